"""Streaming chat with cited web sources."""

from .aggregator import ChatStreamAggregator, dedupe_citations
from .service import ChatService, extract_citations

__all__ = [
    "ChatStreamAggregator",
    "dedupe_citations",
    "ChatService",
    "extract_citations",
]

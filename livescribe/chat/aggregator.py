"""Folds a streamed chat answer into text plus de-duplicated citations."""

import logging
from collections import OrderedDict
from typing import Iterable, List, Optional, Tuple

from ..models.chat import ChatRole, ChatTurn, CitationEntry

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


def dedupe_citations(citations: Iterable[CitationEntry]) -> Tuple[CitationEntry, ...]:
    """Keep the first entry seen for every URI, in arrival order."""
    unique: "OrderedDict[str, CitationEntry]" = OrderedDict()
    for citation in citations:
        if citation.uri not in unique:
            unique[citation.uri] = citation
    return tuple(unique.values())


class ChatStreamAggregator:
    """Accumulates one model turn from a stream of chunks.

    Each chunk replaces the visible turn with a new ``ChatTurn`` so readers
    always see a consistent text/citations pair.
    """

    def __init__(self):
        self._text_parts: List[str] = []
        self._citations: "OrderedDict[str, CitationEntry]" = OrderedDict()
        self.turn: Optional[ChatTurn] = None
        self.finished = False

    def begin(self) -> ChatTurn:
        """Start a fresh model turn; citations from earlier turns are dropped."""
        self._text_parts = []
        self._citations = OrderedDict()
        self.finished = False
        self.turn = ChatTurn(role=ChatRole.MODEL)
        return self.turn

    def apply_chunk(self, text: Optional[str], citations: Iterable[CitationEntry] = ()) -> ChatTurn:
        if self.turn is None or self.finished:
            raise RuntimeError("apply_chunk() called outside of a turn")
        if text:
            self._text_parts.append(text)
        for citation in citations:
            self._citations.setdefault(citation.uri, citation)

        self.turn = self.turn.with_content(
            text="".join(self._text_parts),
            citations=tuple(self._citations.values()),
        )
        return self.turn

    def fail(self, message: str) -> ChatTurn:
        """Replace the partial answer with an error marker and end the turn."""
        if self.turn is None:
            self.begin()
        logger.debug(f"Chat turn failed after {len(self._text_parts)} chunks: {message}")
        self.turn = self.turn.with_content(text=f"{ERROR_PREFIX}{message}", citations=self.turn.citations)
        self.finished = True
        return self.turn

    def finish(self) -> ChatTurn:
        if self.turn is None:
            raise RuntimeError("finish() called before begin()")
        self.finished = True
        return self.turn

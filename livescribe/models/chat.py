"""Chat-related data models."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple


class ChatRole(Enum):
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class CitationEntry:
    """A web source backing part of a model answer. Unique by ``uri``."""
    uri: str
    title: Optional[str] = None


@dataclass(frozen=True)
class ChatTurn:
    """One side of a chat exchange."""
    role: ChatRole
    text: str = ""
    citations: Tuple[CitationEntry, ...] = field(default_factory=tuple)

    def with_content(self, text: str, citations: Tuple[CitationEntry, ...]) -> "ChatTurn":
        return replace(self, text=text, citations=citations)

"""Abstract base class for streaming transcription sessions."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional
import logging

from ..models.audio import EncodedAudioBlock

logger = logging.getLogger(__name__)


@dataclass
class SessionHandlers:
    """Event sinks a streaming session reports to."""
    on_transcript: Callable[[str, bool], None]
    on_error: Callable[[Exception], None]
    on_close: Callable[[], None]


class AbstractStreamingSession(ABC):
    """One bidirectional connection to a remote transcription service.

    Implementations report through ``SessionHandlers`` and must honour the
    ordering contract: transcripts for a turn arrive in order, ``on_error`` is
    terminal, and ``on_close`` fires at most once and never after an error.
    The ``_emit_*`` helpers enforce the terminal rules.
    """

    def __init__(self):
        self.handlers: Optional[SessionHandlers] = None
        self.is_open = False
        self._terminated = False

    @abstractmethod
    async def open(self, handlers: SessionHandlers) -> None:
        """Complete the handshake. Raises SessionConnectionError on failure."""
        pass

    @abstractmethod
    async def send(self, block: EncodedAudioBlock) -> None:
        """Send one encoded audio block."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call repeatedly and after an error."""
        pass

    def _emit_transcript(self, text: str, is_final: bool) -> None:
        if self._terminated or self.handlers is None:
            return
        self.handlers.on_transcript(text, is_final)

    def _emit_error(self, error: Exception) -> None:
        if self._terminated:
            logger.debug(f"Dropping error after termination: {error}")
            return
        self._terminated = True
        self.is_open = False
        if self.handlers is not None:
            self.handlers.on_error(error)

    def _emit_close(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        self.is_open = False
        if self.handlers is not None:
            self.handlers.on_close()

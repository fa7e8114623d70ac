"""Session-related data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionState(Enum):
    """Lifecycle states of a transcription session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def can_start(self) -> bool:
        return self in (SessionState.IDLE, SessionState.CLOSED, SessionState.FAILED)


@dataclass
class SessionStatus:
    """Point-in-time view of a session controller."""
    state: SessionState
    generation: int
    error: Optional[str] = None
    blocks_sent: int = 0
    blocks_queued: int = 0
    blocks_dropped: int = 0

    @property
    def is_recording(self) -> bool:
        return self.state in (SessionState.CONNECTING, SessionState.OPEN)

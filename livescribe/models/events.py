"""Event models published on the pub/sub topics."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from .session import SessionState
from .transcription import TranscriptSegment


@dataclass(frozen=True)
class TranscriptUpdateEvent:
    """The transcript changed; carries a full snapshot of the segments."""
    generation: int
    segments: Tuple[TranscriptSegment, ...]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SessionStateEvent:
    """The session controller moved from one state to another."""
    generation: int
    state: SessionState
    previous_state: SessionState
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

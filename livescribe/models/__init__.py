"""Data models for the LiveScribe application."""

from .audio import AudioBlock, EncodedAudioBlock, AudioStats, PCM_MIME_TYPE
from .transcription import TranscriptSegment
from .session import SessionState, SessionStatus
from .chat import ChatRole, ChatTurn, CitationEntry
from .events import TranscriptUpdateEvent, SessionStateEvent

__all__ = [
    "AudioBlock",
    "EncodedAudioBlock",
    "AudioStats",
    "PCM_MIME_TYPE",
    "TranscriptSegment",
    "SessionState",
    "SessionStatus",
    "ChatRole",
    "ChatTurn",
    "CitationEntry",
    "TranscriptUpdateEvent",
    "SessionStateEvent",
]

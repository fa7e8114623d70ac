"""Services layer for LiveScribe application logic."""

from .session_controller import SessionController
from .transcription_service import TranscriptionService

__all__ = [
    "SessionController",
    "TranscriptionService",
]

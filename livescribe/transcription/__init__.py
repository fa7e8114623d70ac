"""Transcription module for LiveScribe."""

from .base import AbstractStreamingSession, SessionHandlers
from .aggregator import TranscriptAggregator, fold_transcript
from .publisher import TranscriptPublisher
from .gemini_live import GeminiLiveSession
from .google_streaming import GoogleSpeechStreamingSession

__all__ = [
    "AbstractStreamingSession",
    "SessionHandlers",
    "TranscriptAggregator",
    "fold_transcript",
    "TranscriptPublisher",
    "GeminiLiveSession",
    "GoogleSpeechStreamingSession",
]

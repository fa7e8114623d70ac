"""Transcription-related data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TranscriptSegment:
    """A unit of recognized speech; partial segments may still be overwritten."""
    text: str
    is_final: bool = False

"""Audio-related data models."""

import base64
from dataclasses import dataclass, field
from typing import Dict

import numpy as np


PCM_MIME_TYPE = "audio/pcm;rate=16000"


@dataclass(frozen=True)
class AudioBlock:
    """A fixed-size block of float samples captured from the microphone."""
    samples: np.ndarray = field(repr=False)
    sequence_number: int
    timestamp: float  # Time when this block was captured
    sample_rate: int = 16000
    channels: int = 1

    @property
    def duration_ms(self) -> int:
        return int(len(self.samples) * 1000 / (self.sample_rate * self.channels))


@dataclass(frozen=True)
class EncodedAudioBlock:
    """A wire-ready 16-bit PCM payload."""
    data: bytes = field(repr=False)
    sequence_number: int
    mime_type: str = PCM_MIME_TYPE

    @property
    def encoded(self) -> str:
        """Base64 text form of the PCM bytes for text-based transports."""
        return base64.b64encode(self.data).decode("ascii")

    def to_wire(self) -> Dict[str, str]:
        return {"data": self.encoded, "mimeType": self.mime_type}


@dataclass
class AudioStats:
    """Audio capture statistics."""
    is_capturing: bool
    duration_seconds: float
    sample_rate: int
    block_size: int
    total_blocks: int
    peak_level: float = 0.0

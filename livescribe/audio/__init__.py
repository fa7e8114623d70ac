"""Audio capture and encoding module."""

from .capture import AudioFrameSource
from .encoder import AudioEncoder, encode_block

__all__ = [
    'AudioFrameSource',
    'AudioEncoder',
    'encode_block',
]

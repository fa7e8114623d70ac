"""Float sample to 16-bit PCM encoding for outbound audio."""

import logging

import numpy as np

from ..errors import EncodingFault
from ..models.audio import AudioBlock, EncodedAudioBlock, PCM_MIME_TYPE


logger = logging.getLogger(__name__)

PCM_SCALE = 32768


def encode_block(samples: np.ndarray) -> bytes:
    """Convert float samples in roughly [-1, 1] to little-endian int16 bytes.

    Samples are scaled by 32768 and truncated toward zero. Nothing is clamped:
    values outside the int16 range wrap around, so a full-scale 1.0 becomes
    -32768. Non-finite samples encode as 0.
    """
    array = np.asarray(samples)
    if array.ndim != 1:
        raise EncodingFault(f"Expected a 1-D block of samples, got shape {array.shape}")
    if not np.issubdtype(array.dtype, np.number):
        raise EncodingFault(f"Expected numeric samples, got dtype {array.dtype}")

    scaled = np.nan_to_num(array.astype(np.float64), nan=0.0, posinf=0.0, neginf=0.0) * PCM_SCALE
    # int64 first so the int16 conversion is a well-defined modular wrap
    pcm = np.trunc(scaled).astype(np.int64).astype(np.int16)
    return pcm.astype('<i2').tobytes()


class AudioEncoder:
    """Encodes captured blocks into wire-ready PCM payloads."""

    def __init__(self, sample_rate: int = 16000):
        self.sample_rate = sample_rate
        self.mime_type = PCM_MIME_TYPE if sample_rate == 16000 else f"audio/pcm;rate={sample_rate}"
        self.blocks_encoded = 0

    def encode(self, block: AudioBlock) -> EncodedAudioBlock:
        if block.sample_rate != self.sample_rate:
            raise EncodingFault(
                f"Block sample rate {block.sample_rate} does not match encoder rate {self.sample_rate}"
            )
        data = encode_block(block.samples)
        self.blocks_encoded += 1
        return EncodedAudioBlock(
            data=data,
            sequence_number=block.sequence_number,
            mime_type=self.mime_type,
        )

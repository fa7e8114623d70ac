"""Microphone capture that emits fixed-size blocks of float samples."""

import pyaudio
import time
import logging
from typing import Optional, Callable, Any
from datetime import datetime
import numpy as np

from ..errors import PermissionDeniedError
from ..models.audio import AudioBlock, AudioStats


logger = logging.getLogger(__name__)

AudioSink = Callable[[AudioBlock], None]


class AudioFrameSource:
    """Callback-driven microphone source for the streaming pipeline.

    The stream runs in PortAudio's own thread. Every callback produces one
    ``AudioBlock`` which is handed to the attached sink; the sink must return
    quickly and never block on the network.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 4096,
        channels: int = 1,
        device_index: Optional[int] = None,
        pyaudio_factory: Optional[Callable[[], Any]] = None,
    ):
        """Initialize the frame source.

        Args:
            sample_rate: Audio sample rate in Hz
            block_size: Samples per callback block
            channels: Number of audio channels (1 for mono)
            device_index: PortAudio input device, None for the default
            pyaudio_factory: Callable returning a PyAudio-like object
        """
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.channels = channels
        self.device_index = device_index
        self._pyaudio_factory = pyaudio_factory

        self.pyaudio_instance = None
        self.stream = None
        self._sink: Optional[AudioSink] = None
        self.is_capturing = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_blocks = 0
        self.peak_level = 0.0

    @property
    def released(self) -> bool:
        """True once no OS-level audio resource is held."""
        return self.stream is None and self.pyaudio_instance is None

    def open(self) -> None:
        """Acquire the microphone. Raises PermissionDeniedError on failure."""
        if self.stream is not None:
            logger.warning("Audio stream already open")
            return

        factory = self._pyaudio_factory or pyaudio.PyAudio
        try:
            self.pyaudio_instance = factory()
            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.block_size,
                stream_callback=self._on_audio,
                start=False,
            )
        except OSError as e:
            logger.error(f"Could not open microphone: {e}")
            self.terminate()
            raise PermissionDeniedError(f"Microphone unavailable: {e}") from e

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.block_size} samples/block")

    def attach(self, sink: AudioSink) -> None:
        """Wire the per-block callback."""
        self._sink = sink

    def start(self) -> None:
        """Start delivering blocks to the sink."""
        if self.stream is None:
            raise RuntimeError("Audio stream is not open")
        self.start_time = datetime.now()
        self.total_blocks = 0
        self.peak_level = 0.0
        self.stream.start_stream()
        self.is_capturing = True
        logger.info("Audio capture started")

    def _on_audio(self, in_data, frame_count, time_info, status_flags):
        """PyAudio callback, runs on the PortAudio thread."""
        sink = self._sink
        if in_data is None or sink is None:
            return (None, pyaudio.paContinue)

        samples = np.frombuffer(in_data, dtype=np.float32).copy()
        self.total_blocks += 1
        if samples.size:
            self.peak_level = float(np.max(np.abs(samples)))

        block = AudioBlock(
            samples=samples,
            sequence_number=self.total_blocks,
            timestamp=time.time(),
            sample_rate=self.sample_rate,
            channels=self.channels,
        )
        try:
            sink(block)
        except Exception:
            # Never let a sink failure kill the audio thread
            logger.exception("Audio sink raised")
        return (None, pyaudio.paContinue)

    def detach(self) -> None:
        """Disconnect the sink so no further blocks are delivered."""
        self._sink = None

    def stop_stream(self) -> None:
        """Stop and close the input stream."""
        stream, self.stream = self.stream, None
        self.is_capturing = False
        if stream is None:
            return
        try:
            stream.stop_stream()
        finally:
            stream.close()
        logger.info(f"Audio stream closed. Total blocks: {self.total_blocks}")

    def terminate(self) -> None:
        """Release the PortAudio instance."""
        instance, self.pyaudio_instance = self.pyaudio_instance, None
        if instance is not None:
            instance.terminate()

    def close(self) -> None:
        """Run every teardown step, each one guarded."""
        for step in (self.detach, self.stop_stream, self.terminate):
            try:
                step()
            except Exception as e:
                logger.warning(f"Audio teardown step {step.__name__} failed: {e}")

    def get_stats(self) -> AudioStats:
        """Get current capture statistics."""
        duration = 0.0
        if self.start_time and self.is_capturing:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_capturing=self.is_capturing,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            block_size=self.block_size,
            total_blocks=self.total_blocks,
            peak_level=self.peak_level,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if not self.released:
            self.close()

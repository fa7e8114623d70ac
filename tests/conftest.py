"""Pytest configuration and fixtures for LiveScribe tests."""

import asyncio
import logging
import time
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np
import pytest

from livescribe.errors import SessionConnectionError
from livescribe.models.audio import AudioBlock, EncodedAudioBlock
from livescribe.transcription.base import AbstractStreamingSession, SessionHandlers


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: multi-component tests with mocked hardware")
    config.addinivalue_line("markers", "hardware: requires a real microphone")


class FakeStreamingSession(AbstractStreamingSession):
    """In-memory streaming session driven by the test.

    ``open()`` waits on ``open_gate`` when one is set, so a test can hold the
    handshake open and resolve it later.
    """

    instances: List["FakeStreamingSession"] = []

    def __init__(self, open_gate: Optional[asyncio.Future] = None, open_error: Optional[Exception] = None,
                 send_error: Optional[Exception] = None):
        super().__init__()
        self.open_gate = open_gate
        self.open_error = open_error
        self.send_error = send_error
        self.sent: List[EncodedAudioBlock] = []
        self.open_calls = 0
        self.close_calls = 0
        self.closed = False
        FakeStreamingSession.instances.append(self)

    async def open(self, handlers: SessionHandlers) -> None:
        self.open_calls += 1
        self.handlers = handlers
        if self.open_gate is not None:
            await self.open_gate
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    async def send(self, block: EncodedAudioBlock) -> None:
        if self.closed:
            raise SessionConnectionError("send after close")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(block)

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self.is_open = False
        self._terminated = True

    # Test drivers for server-side events
    def push_transcript(self, text: str, is_final: bool = False) -> None:
        self._emit_transcript(text, is_final)

    def push_error(self, error: Exception) -> None:
        self._emit_error(error)

    def push_close(self) -> None:
        self._emit_close()


class FakeFrameSource:
    """Stand-in for AudioFrameSource that records every teardown step."""

    instances: List["FakeFrameSource"] = []

    def __init__(self, open_error: Optional[Exception] = None, sample_rate: int = 16000,
                 open_delay: float = 0.0):
        self.open_error = open_error
        self.open_delay = open_delay
        self.sample_rate = sample_rate
        self.sink = None
        self.opened = False
        self.started = False
        self.calls: List[str] = []
        self.sequence = 0
        FakeFrameSource.instances.append(self)

    @property
    def released(self) -> bool:
        return not self.opened

    def open(self) -> None:
        self.calls.append("open")
        if self.open_delay:
            # Runs on a worker thread, like PortAudio device setup
            time.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def attach(self, sink) -> None:
        self.sink = sink

    def start(self) -> None:
        self.started = True

    def detach(self) -> None:
        self.calls.append("detach")
        self.sink = None

    def stop_stream(self) -> None:
        self.calls.append("stop_stream")
        self.started = False

    def terminate(self) -> None:
        self.calls.append("terminate")
        self.opened = False

    def close(self) -> None:
        self.detach()
        self.stop_stream()
        self.terminate()

    def emit(self, value: float = 0.0, size: int = 4096) -> None:
        """Simulate one PortAudio callback."""
        if self.sink is None:
            return
        self.sequence += 1
        self.sink(make_block(self.sequence, value=value, size=size))


def make_block(sequence_number: int = 1, value: float = 0.0, size: int = 4096) -> AudioBlock:
    return AudioBlock(
        samples=np.full(size, value, dtype=np.float32),
        sequence_number=sequence_number,
        timestamp=time.time(),
    )


async def settle(rounds: int = 5) -> None:
    """Let callbacks scheduled with call_soon(_threadsafe) and worker threads run."""
    for _ in range(rounds):
        await asyncio.sleep(0.01)


@pytest.fixture(autouse=True)
def reset_fakes():
    FakeStreamingSession.instances.clear()
    FakeFrameSource.instances.clear()
    yield


@pytest.fixture
def sine_block():
    """A 4096-sample 440 Hz block at half scale."""
    t = np.arange(4096) / 16000
    samples = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    return AudioBlock(samples=samples, sequence_number=1, timestamp=time.time())


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None
        mock_stream.start_stream.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def temp_config_file(tmp_path):
    """Write a YAML config and return its path."""
    def write(content: str):
        path = tmp_path / "livescribe.yaml"
        path.write_text(content, encoding="utf-8")
        return str(path)
    return write

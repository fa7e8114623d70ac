"""Transcription service that builds the session pipeline from configuration."""

import logging
from typing import Optional

from ..audio.capture import AudioFrameSource
from ..audio.encoder import AudioEncoder
from ..config import LiveScribeConfig
from ..errors import ConfigurationError, LiveScribeError
from ..transcription.base import AbstractStreamingSession
from ..transcription.gemini_live import GeminiLiveSession
from ..transcription.google_streaming import GoogleSpeechStreamingSession
from ..transcription.publisher import TranscriptPublisher
from .session_controller import ErrorCallback, SessionController

logger = logging.getLogger(__name__)

BACKENDS = ("gemini_live", "google_speech")


class TranscriptionService:
    """Creates sessions, audio sources and the controller that owns them."""

    def __init__(self, config: LiveScribeConfig):
        """Initialize transcription service.

        Args:
            config: Application configuration
        """
        self.config = config
        self.backend = config.get('transcription.backend', 'gemini_live')
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown transcription backend '{self.backend}' (expected one of {', '.join(BACKENDS)})"
            )
        self.sample_rate = config.get('audio.sample_rate', 16000)
        self.block_size = config.get('audio.block_size', 4096)
        self.channels = config.get('audio.channels', 1)
        self.device_index = config.get('audio.device_index')

        logger.info(f"Audio settings: {self.sample_rate}Hz, {self.block_size} samples/block, "
                    f"{self.channels} channels")
        logger.info(f"Transcription backend: {self.backend}")

    def create_session(self) -> AbstractStreamingSession:
        """Build a streaming session; credentials are read fresh every time."""
        credentials = self.config.get_service_credentials()
        if self.backend == 'google_speech':
            return GoogleSpeechStreamingSession(
                credentials=credentials,
                sample_rate=self.sample_rate,
                language=self.config.get('transcription.language', 'en-US'),
            )
        return GeminiLiveSession(
            credentials=credentials,
            model=self.config.get('transcription.model', 'gemini-live-2.5-flash-preview'),
        )

    def create_source(self) -> AudioFrameSource:
        return AudioFrameSource(
            sample_rate=self.sample_rate,
            block_size=self.block_size,
            channels=self.channels,
            device_index=self.device_index,
        )

    def create_controller(
        self,
        publisher: Optional[TranscriptPublisher] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> SessionController:
        """Build a controller wired to this service's factories."""
        # Fail fast on missing credentials instead of at the first start()
        try:
            self.config.get_service_credentials()
        except LiveScribeError:
            logger.error("Transcription credentials are not configured")
            raise

        return SessionController(
            session_factory=self.create_session,
            source_factory=self.create_source,
            encoder=AudioEncoder(sample_rate=self.sample_rate),
            publisher=publisher if publisher is not None else TranscriptPublisher(),
            max_queued_blocks=self.config.get('session.pre_open_queue_size', 64),
            on_error=on_error,
        )

"""Gemini Live API streaming session (input transcription only)."""

import asyncio
import contextlib
import logging
from typing import Any, Callable, Optional

from google import genai
from google.genai import types

from .base import AbstractStreamingSession, SessionHandlers
from ..config import ServiceCredentials
from ..errors import SessionConnectionError
from ..models.audio import EncodedAudioBlock

logger = logging.getLogger(__name__)

DEFAULT_LIVE_MODEL = "gemini-live-2.5-flash-preview"

ClientFactory = Callable[[ServiceCredentials], Any]


def default_client_factory(credentials: ServiceCredentials) -> genai.Client:
    """Build a fresh SDK client for one operation."""
    return genai.Client(api_key=credentials.api_key)


def build_live_config() -> types.LiveConnectConfig:
    """Connection config: transcribe the input, declare audio output.

    The Live API requires a response modality even though this application
    never plays the model's audio back.
    """
    return types.LiveConnectConfig(
        response_modalities=[types.Modality.AUDIO],
        input_audio_transcription=types.AudioTranscriptionConfig(),
    )


class GeminiLiveSession(AbstractStreamingSession):
    """Streams microphone audio to Gemini Live and reports input transcripts.

    Input-transcription fragments are accumulated per turn and reported as
    the running (non-final) text; ``turn_complete`` reports the turn as
    final and starts a new one.
    """

    def __init__(
        self,
        credentials: ServiceCredentials,
        model: str = DEFAULT_LIVE_MODEL,
        client_factory: ClientFactory = default_client_factory,
    ):
        super().__init__()
        self.credentials = credentials
        self.model = model
        self._client_factory = client_factory

        self._exit_stack: Optional[contextlib.AsyncExitStack] = None
        self._session = None
        self._receive_task: Optional[asyncio.Task] = None
        self._turn_text = ""
        self._opened = False
        self._closed = False

    async def open(self, handlers: SessionHandlers) -> None:
        if self._opened:
            raise RuntimeError("GeminiLiveSession can only be opened once")
        self._opened = True
        self.handlers = handlers

        stack = contextlib.AsyncExitStack()
        try:
            client = self._client_factory(self.credentials)
            self._session = await stack.enter_async_context(
                client.aio.live.connect(model=self.model, config=build_live_config())
            )
        except Exception as e:
            logger.error(f"Gemini Live connect failed: {e}")
            with contextlib.suppress(Exception):
                await stack.aclose()
            raise SessionConnectionError(f"Failed to connect to the transcription service: {e}") from e

        self._exit_stack = stack
        if self._closed:
            # close() ran while the handshake was in flight
            await self._release()
            raise SessionConnectionError("Session was closed during the handshake")

        self.is_open = True
        self._receive_task = asyncio.create_task(self._receive_loop(), name="GeminiLiveReceive")
        logger.info(f"Gemini Live session open (model={self.model})")

    async def _receive_loop(self) -> None:
        try:
            while not self._closed:
                received = 0
                # receive() yields messages until the end of the current turn
                async for message in self._session.receive():
                    received += 1
                    self._handle_message(message)
                if received == 0:
                    logger.info("Gemini Live stream ended")
                    self._emit_close()
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._closed:
                logger.debug(f"Receive loop ended during close: {e}")
                return
            logger.error(f"Gemini Live stream error: {e}")
            self._emit_error(SessionConnectionError(f"Transcription stream failed: {e}"))

    def _handle_message(self, message) -> None:
        content = getattr(message, "server_content", None)
        if content is None:
            return

        transcription = content.input_transcription
        if transcription is not None and transcription.text:
            self._turn_text += transcription.text
            self._emit_transcript(self._turn_text, False)

        # model_turn carries the reply audio, which is not played

        if content.turn_complete:
            text, self._turn_text = self._turn_text, ""
            if text:
                self._emit_transcript(text, True)

    async def send(self, block: EncodedAudioBlock) -> None:
        if not self.is_open or self._session is None:
            raise SessionConnectionError("Transcription session is not open")
        try:
            await self._session.send_realtime_input(
                audio=types.Blob(data=block.data, mime_type=block.mime_type)
            )
        except Exception as e:
            raise SessionConnectionError(f"Failed to send audio: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.is_open = False
        # A locally requested close is not reported back through on_close
        self._terminated = True

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._release()
        logger.info("Gemini Live session closed")

    async def _release(self) -> None:
        stack, self._exit_stack = self._exit_stack, None
        self._session = None
        if stack is None:
            return
        try:
            await stack.aclose()
        except Exception as e:
            logger.warning(f"Error closing Gemini Live connection: {e}")

"""Google Speech-to-Text streaming session backend."""

import asyncio
import logging
import queue
import threading
from typing import Any, Callable, Iterator, Optional

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

from .base import AbstractStreamingSession, SessionHandlers
from ..config import ServiceCredentials
from ..errors import SessionConnectionError
from ..models.audio import EncodedAudioBlock

logger = logging.getLogger(__name__)

SpeechClientFactory = Callable[[ServiceCredentials], Any]


def default_speech_client_factory(credentials: ServiceCredentials) -> speech.SpeechClient:
    """Build a Speech client from a service account file."""
    logger.info(f"Loading Google credentials from: {credentials.credentials_path}")
    creds = service_account.Credentials.from_service_account_file(credentials.credentials_path)
    logger.info(f"Using Google Cloud project: {creds.project_id}")
    return speech.SpeechClient(credentials=creds)


class GoogleSpeechStreamingSession(AbstractStreamingSession):
    """Streams audio to Google Speech-to-Text ``streaming_recognize``.

    The gRPC stream is blocking, so it runs on a worker thread fed from a
    thread-safe request queue. Responses are marshalled back onto the event
    loop before any handler runs. Interim results are reported as partial
    text, ``is_final`` results as final.
    """

    def __init__(
        self,
        credentials: ServiceCredentials,
        sample_rate: int = 16000,
        language: str = "en-US",
        enable_automatic_punctuation: bool = True,
        client_factory: SpeechClientFactory = default_speech_client_factory,
    ):
        """Initialize Google streaming session.

        Args:
            credentials: Credentials carrying the service account path
            sample_rate: Sample rate of the PCM being sent
            language: Language code (e.g., 'en-US', 'es-ES')
            enable_automatic_punctuation: Enable automatic punctuation
            client_factory: Builds the SpeechClient for this session
        """
        super().__init__()
        if not credentials.credentials_path:
            raise ValueError("Google credentials path is required - cannot stream without credentials")
        self.credentials = credentials
        self.language = language
        self._client_factory = client_factory
        self.streaming_config = speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=sample_rate,
                language_code=language,
                enable_automatic_punctuation=enable_automatic_punctuation,
            ),
            interim_results=True,
        )

        self.client = None
        self._requests: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[threading.Thread] = None
        self._worker_done = threading.Event()
        self._closed = False

    async def open(self, handlers: SessionHandlers) -> None:
        if self._worker is not None:
            raise RuntimeError("GoogleSpeechStreamingSession can only be opened once")
        self.handlers = handlers
        self._loop = asyncio.get_running_loop()

        try:
            self.client = await asyncio.to_thread(self._client_factory, self.credentials)
        except Exception as e:
            logger.error(f"Google Speech client setup failed: {e}")
            raise SessionConnectionError(f"Failed to connect to Google Speech: {e}") from e

        if self._closed:
            raise SessionConnectionError("Session was closed during the handshake")

        self._worker = threading.Thread(target=self._run_stream, name="GoogleSpeechStream", daemon=True)
        self._worker.start()
        self.is_open = True
        logger.info(f"Google Speech streaming session open (language={self.language})")

    def _request_generator(self) -> Iterator[speech.StreamingRecognizeRequest]:
        while True:
            chunk = self._requests.get()
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _run_stream(self) -> None:
        """Worker thread: consume responses until the stream ends."""
        try:
            responses = self.client.streaming_recognize(
                config=self.streaming_config,
                requests=self._request_generator(),
            )
            for response in responses:
                if self._closed:
                    break
                self._dispatch_response(response)
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT streaming API call error: {e}")
            self._post(self._emit_error, SessionConnectionError(f"Google Speech API error: {e}"))
        except Exception as e:
            logger.error(f"Google STT streaming failed: {e}")
            self._post(self._emit_error, SessionConnectionError(f"Google Speech stream failed: {e}"))
        else:
            self._post(self._emit_close)
        finally:
            self._worker_done.set()

    def _dispatch_response(self, response) -> None:
        results = [r for r in response.results if r.alternatives]
        if not results:
            return
        first = results[0]
        if first.is_final:
            text = first.alternatives[0].transcript.strip()
            logger.debug(f"Final transcript='{text}' (conf={first.alternatives[0].confidence})")
            self._post(self._emit_transcript, text, True)
        else:
            # Interim responses can split the utterance across several results
            text = "".join(r.alternatives[0].transcript for r in results).strip()
            self._post(self._emit_transcript, text, False)

    def _post(self, callback, *args) -> None:
        if self._closed or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed, dropping stream callback")

    async def send(self, block: EncodedAudioBlock) -> None:
        if not self.is_open:
            raise SessionConnectionError("Transcription session is not open")
        self._requests.put_nowait(block.data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.is_open = False
        self._terminated = True
        self._requests.put_nowait(None)

        if self._worker is not None:
            finished = await asyncio.to_thread(self._worker_done.wait, 2.0)
            if not finished:
                logger.warning("Google Speech stream did not stop cleanly")

        client, self.client = self.client, None
        if client is not None:
            try:
                client.transport.close()
            except Exception as e:
                logger.warning(f"Error closing Google Speech client: {e}")
        logger.info("Google Speech streaming session closed")

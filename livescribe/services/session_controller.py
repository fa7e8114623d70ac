"""Session controller: owns the capture → encode → stream → transcript pipeline."""

import asyncio
import logging
from collections import deque
from functools import partial
from typing import Callable, Deque, Optional, Set, Tuple

from ..audio.capture import AudioFrameSource
from ..audio.encoder import AudioEncoder
from ..errors import (
    EncodingFault,
    LiveScribeError,
    PermissionDeniedError,
    SessionConnectionError,
)
from ..models.audio import AudioBlock
from ..models.session import SessionState, SessionStatus
from ..models.transcription import TranscriptSegment
from ..transcription.aggregator import TranscriptAggregator
from ..transcription.base import AbstractStreamingSession, SessionHandlers
from ..transcription.publisher import TranscriptPublisher

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractStreamingSession]
SourceFactory = Callable[[], AudioFrameSource]
ErrorCallback = Callable[[LiveScribeError], None]

ACTIVE_STATES = (SessionState.CONNECTING, SessionState.OPEN)


class SessionController:
    """Lifecycle state machine for one transcription session at a time.

    Runs on a single asyncio event loop. Audio callbacks arrive on the
    PortAudio thread and are marshalled onto the loop; network callbacks are
    delivered on the loop by the session. Every asynchronous continuation is
    tagged with the generation that created it, and anything from a
    superseded generation is discarded.

    Audio captured before the session is open waits in a bounded queue. When
    the queue is full the oldest block is dropped. Once the session opens
    the queue is flushed in order ahead of live audio.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        source_factory: SourceFactory,
        encoder: Optional[AudioEncoder] = None,
        publisher: Optional[TranscriptPublisher] = None,
        max_queued_blocks: int = 64,
        on_error: Optional[ErrorCallback] = None,
    ):
        """Initialize the controller.

        Args:
            session_factory: Builds a fresh streaming session per start()
            source_factory: Builds a fresh microphone source per start()
            encoder: PCM encoder, defaults to a 16 kHz AudioEncoder
            publisher: Publishes transcript/state events, None to disable
            max_queued_blocks: Capacity of the outbound block queue
            on_error: Called with the error when a session fails
        """
        if max_queued_blocks < 1:
            raise ValueError("max_queued_blocks must be at least 1")
        self._session_factory = session_factory
        self._source_factory = source_factory
        self._encoder = encoder or AudioEncoder()
        self._publisher = publisher
        self.max_queued_blocks = max_queued_blocks
        self._on_error = on_error

        self.state = SessionState.IDLE
        self.generation = 0
        self.last_error: Optional[str] = None
        self.aggregator = TranscriptAggregator()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._source: Optional[AudioFrameSource] = None
        self._session: Optional[AbstractStreamingSession] = None
        self._pending: Deque[AudioBlock] = deque()
        self._wake = asyncio.Event()
        self._acquire_task: Optional[asyncio.Task] = None
        self._teardowns: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()

        self.blocks_sent = 0
        self.blocks_dropped = 0

    # ------------------------------------------------------------------
    # Public API

    @property
    def segments(self) -> Tuple[TranscriptSegment, ...]:
        return self.aggregator.segments

    @property
    def is_recording(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def released(self) -> bool:
        """True when no audio source or session is held or being released."""
        acquiring = self._acquire_task is not None and not self._acquire_task.done()
        return (
            self._source is None
            and self._session is None
            and not self._teardowns
            and not acquiring
        )

    def status(self) -> SessionStatus:
        return SessionStatus(
            state=self.state,
            generation=self.generation,
            error=self.last_error,
            blocks_sent=self.blocks_sent,
            blocks_queued=len(self._pending),
            blocks_dropped=self.blocks_dropped,
        )

    async def start(self) -> bool:
        """Begin capturing and streaming. Returns False if nothing started."""
        await self._wait_for_teardowns()
        if not self.state.can_start:
            logger.warning(f"start() ignored in state {self.state.value}")
            return False

        self._loop = asyncio.get_running_loop()
        self.generation += 1
        generation = self.generation
        self.last_error = None
        self.blocks_sent = 0
        self.blocks_dropped = 0
        self._pending.clear()
        self.aggregator.reset()
        self._set_state(SessionState.CONNECTING)
        self._publish_transcript()
        logger.info(f"Starting transcription session (generation {generation})")

        source = self._source_factory()
        self._acquire_task = asyncio.create_task(self._acquire_source(generation, source))
        try:
            acquired = await asyncio.shield(self._acquire_task)
        except PermissionDeniedError as e:
            self._fail(generation, e)
            return False
        except asyncio.CancelledError:
            if generation == self.generation:
                logger.info("start() cancelled while acquiring the microphone")
                self._set_state(SessionState.CLOSING)
                # Stale generation makes the acquire task release the source itself
                self._begin_teardown()
                self._acquire_task.add_done_callback(self._on_abandoned_acquire)
            raise
        if not acquired:
            return False

        self._source = source
        try:
            session = self._session_factory()
        except Exception as e:
            logger.error(f"Could not create transcription session: {e}")
            error = e if isinstance(e, LiveScribeError) else SessionConnectionError(str(e))
            self._fail(generation, error)
            return False
        self._session = session
        handlers = SessionHandlers(
            on_transcript=partial(self._on_transcript, generation),
            on_error=partial(self._on_session_error, generation),
            on_close=partial(self._on_session_close, generation),
        )
        self._spawn(self._open_session(generation, session, handlers))
        self._spawn(self._send_loop(generation))

        # Capture begins right away; blocks queue until the session is open
        source.attach(partial(self._on_audio_block, generation))
        try:
            source.start()
        except Exception as e:
            logger.error(f"Could not start audio capture: {e}")
            self._fail(generation, PermissionDeniedError(f"Could not start audio capture: {e}"))
            return False
        return True

    async def stop(self) -> None:
        """Tear everything down. Idempotent and safe to call concurrently."""
        if self.state in ACTIVE_STATES:
            logger.info(f"Stopping transcription session (generation {self.generation})")
            self._set_state(SessionState.CLOSING)
            self._begin_teardown()
        await self._wait_for_teardowns()
        if self.state in (SessionState.CLOSING, SessionState.FAILED, SessionState.IDLE):
            self._set_state(SessionState.CLOSED)

    async def toggle(self) -> bool:
        """Start when stopped, stop when recording. Returns True if now recording."""
        if self.is_recording:
            await self.stop()
            return False
        return await self.start()

    # ------------------------------------------------------------------
    # Setup

    async def _acquire_source(self, generation: int, source: AudioFrameSource) -> bool:
        try:
            await asyncio.to_thread(source.open)
        except Exception as e:
            source.close()
            if isinstance(e, PermissionDeniedError):
                raise
            raise PermissionDeniedError(f"Could not open microphone: {e}") from e

        if generation != self.generation:
            logger.info("Microphone acquired after stop, releasing it")
            source.close()
            return False
        return True

    def _on_abandoned_acquire(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Abandoned microphone acquisition failed: {task.exception()}")
        if self.state is SessionState.CLOSING and self.released:
            self._set_state(SessionState.CLOSED)

    async def _open_session(
        self, generation: int, session: AbstractStreamingSession, handlers: SessionHandlers
    ) -> None:
        try:
            await session.open(handlers)
        except Exception as e:
            if generation != self.generation:
                logger.debug(f"Superseded session failed to open: {e}")
                return
            error = e if isinstance(e, LiveScribeError) else SessionConnectionError(str(e))
            self._fail(generation, error)
            return

        if generation != self.generation or self._session is not session:
            logger.info("Session opened after stop, closing it")
            await self._close_session(session)
            return

        self._set_state(SessionState.OPEN)
        logger.info(f"Session open, flushing {len(self._pending)} queued blocks")
        self._wake.set()

    # ------------------------------------------------------------------
    # Audio path

    def _on_audio_block(self, generation: int, block: AudioBlock) -> None:
        """Runs on the PortAudio thread; must not block."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._enqueue_block, generation, block)
        except RuntimeError:
            # Loop is shutting down
            pass

    def _enqueue_block(self, generation: int, block: AudioBlock) -> None:
        if generation != self.generation or self.state not in ACTIVE_STATES:
            return
        if len(self._pending) >= self.max_queued_blocks:
            self._pending.popleft()
            self.blocks_dropped += 1
            if self.blocks_dropped == 1 or self.blocks_dropped % 50 == 0:
                logger.warning(f"Outbound audio queue full, dropped {self.blocks_dropped} blocks so far")
        self._pending.append(block)
        self._wake.set()

    async def _send_loop(self, generation: int) -> None:
        while generation == self.generation and self.state in ACTIVE_STATES:
            if self.state is not SessionState.OPEN or not self._pending:
                self._wake.clear()
                await self._wake.wait()
                continue

            block = self._pending.popleft()
            session = self._session
            try:
                payload = self._encoder.encode(block)
                await session.send(payload)
            except EncodingFault as e:
                logger.exception("Audio encoding failed")
                self._fail(generation, e)
                return
            except Exception as e:
                if generation == self.generation:
                    error = e if isinstance(e, LiveScribeError) else SessionConnectionError(str(e))
                    self._fail(generation, error)
                return
            self.blocks_sent += 1

    # ------------------------------------------------------------------
    # Session events

    def _on_transcript(self, generation: int, text: str, is_final: bool) -> None:
        if generation != self.generation or self.state is not SessionState.OPEN:
            logger.debug("Ignoring transcript from a stale session")
            return
        self.aggregator.apply(text, is_final)
        self._publish_transcript()

    def _on_session_error(self, generation: int, error: Exception) -> None:
        if generation != self.generation:
            return
        if not isinstance(error, LiveScribeError):
            error = SessionConnectionError(str(error))
        self._fail(generation, error)

    def _on_session_close(self, generation: int) -> None:
        if generation != self.generation or self.state not in ACTIVE_STATES:
            return
        logger.info("Remote service closed the session")
        self._set_state(SessionState.CLOSING)
        self._begin_teardown()

    def _fail(self, generation: int, error: LiveScribeError) -> None:
        if generation != self.generation or self.state not in ACTIVE_STATES:
            logger.debug(f"Ignoring failure outside an active session: {error}")
            return
        logger.error(f"Transcription session failed: {error}")
        self.last_error = str(error)
        self._set_state(SessionState.FAILED, error=self.last_error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("on_error callback raised")
        self._begin_teardown()

    # ------------------------------------------------------------------
    # Teardown

    def _begin_teardown(self) -> None:
        """Detach current resources and release them in a background task."""
        self.generation += 1
        session, self._session = self._session, None
        source, self._source = self._source, None
        self._pending.clear()
        self._wake.set()
        if session is None and source is None:
            return
        task = asyncio.get_running_loop().create_task(self._teardown(session, source))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    async def _teardown(
        self, session: Optional[AbstractStreamingSession], source: Optional[AudioFrameSource]
    ) -> None:
        if session is not None:
            await self._close_session(session)

        if source is not None:
            steps = (
                ("disconnect audio callback", source.detach),
                ("stop microphone", source.stop_stream),
                ("close audio backend", source.terminate),
            )
            for label, step in steps:
                try:
                    await asyncio.to_thread(step)
                except Exception as e:
                    logger.warning(f"Teardown step '{label}' failed: {e}")

        if self.state is SessionState.CLOSING:
            self._set_state(SessionState.CLOSED)
        logger.info("Transcription resources released")

    async def _close_session(self, session: AbstractStreamingSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Error closing streaming session: {e}")

    async def _wait_for_teardowns(self) -> None:
        acquire = self._acquire_task
        if acquire is not None and not acquire.done():
            await asyncio.gather(acquire, return_exceptions=True)
        while self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _set_state(self, state: SessionState, error: Optional[str] = None) -> None:
        previous, self.state = self.state, state
        if previous is state:
            return
        logger.debug(f"Session state {previous.value} -> {state.value}")
        if self._publisher is not None:
            self._publisher.publish_state(self.generation, state, previous, error=error)

    def _publish_transcript(self) -> None:
        if self._publisher is not None:
            self._publisher.publish_transcript(self.generation, self.aggregator.segments)

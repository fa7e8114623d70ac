"""Terminal transcription screen with a live-updating transcript."""

import asyncio
import logging
from typing import Optional, Sequence

from pubsub import pub
from rich.console import Console, Group
from rich.panel import Panel
from rich.live import Live
from rich.text import Text

from ..models.events import SessionStateEvent, TranscriptUpdateEvent
from ..models.session import SessionState
from ..models.transcription import TranscriptSegment
from ..services.session_controller import SessionController
from ..transcription.publisher import STATE_TOPIC, TRANSCRIPT_TOPIC
from .keyboard_input import create_input_handler


logger = logging.getLogger(__name__)

FINAL_STYLE = "bold"
PARTIAL_STYLE = "dim italic"

STATE_LABELS = {
    SessionState.IDLE: ("⏹️  Tap space to start", "yellow"),
    SessionState.CONNECTING: ("🔌 Connecting...", "cyan"),
    SessionState.OPEN: ("🔴 Listening...", "bold red"),
    SessionState.CLOSING: ("⏳ Stopping...", "yellow"),
    SessionState.CLOSED: ("⏹️  Tap space to start", "yellow"),
    SessionState.FAILED: ("❌ Stopped", "bold red"),
}


def render_transcript(segments: Sequence[TranscriptSegment]) -> Text:
    """Final text at full emphasis, in-progress text muted."""
    text = Text()
    for segment in segments:
        if not segment.text:
            continue
        text.append(segment.text, style=FINAL_STYLE if segment.is_final else PARTIAL_STYLE)
        text.append(" ")
    return text


class TranscriptionScreen:
    """Toggle-driven transcription UI.

    Space or Enter starts/stops recording, ``q`` quits. State and transcript
    arrive through the pub/sub topics the controller publishes on.
    """

    def __init__(self, controller: SessionController, console: Optional[Console] = None):
        self.console = console or Console()
        self.controller = controller
        self.segments: Sequence[TranscriptSegment] = ()
        self.state = controller.state
        self.error: Optional[str] = None
        self._quit: Optional[asyncio.Event] = None

        pub.subscribe(self._on_transcript, TRANSCRIPT_TOPIC)
        pub.subscribe(self._on_state, STATE_TOPIC)
        logger.info("TranscriptionScreen initialized")

    def _on_transcript(self, event: TranscriptUpdateEvent) -> None:
        self.segments = event.segments

    def _on_state(self, event: SessionStateEvent) -> None:
        self.state = event.state
        if event.state is SessionState.CONNECTING:
            self.error = None
        elif event.error:
            self.error = event.error

    def render(self) -> Group:
        label, style = STATE_LABELS[self.state]
        transcript = render_transcript(self.segments)
        if not transcript.plain:
            transcript = Text("Your transcript will appear here.", style="dim")

        parts = [
            Panel(transcript, title="🎙️  LiveScribe", border_style="blue"),
        ]
        if self.error:
            parts.append(Panel(Text(self.error, style="red"), title="Error", border_style="red"))

        status = self.controller.status()
        footer = Text(label, style=style)
        if status.blocks_dropped:
            footer.append(f"  ({status.blocks_dropped} audio blocks dropped)", style="yellow")
        footer.append("   [space] start/stop   [q] quit", style="dim")
        parts.append(footer)
        return Group(*parts)

    async def run(self) -> None:
        """Run until the user quits; always stops the controller on exit."""
        loop = asyncio.get_running_loop()
        self._quit = asyncio.Event()

        def on_key(key: str) -> bool:
            if key in (" ", "\r", "\n"):
                future = asyncio.run_coroutine_threadsafe(self.controller.toggle(), loop)
                future.add_done_callback(_log_toggle_failure)
                return True
            if key == "q":
                loop.call_soon_threadsafe(self._quit.set)
                return False
            return True

        handler = create_input_handler(on_key)
        handler.start()
        try:
            with Live(self.render(), console=self.console, refresh_per_second=10) as live:
                while not self._quit.is_set():
                    live.update(self.render())
                    try:
                        await asyncio.wait_for(self._quit.wait(), timeout=0.1)
                    except asyncio.TimeoutError:
                        pass
                live.update(self.render())
        finally:
            handler.stop()
            await self.controller.stop()
            self.close()

    def close(self) -> None:
        for listener, topic in ((self._on_transcript, TRANSCRIPT_TOPIC), (self._on_state, STATE_TOPIC)):
            try:
                pub.unsubscribe(listener, topic)
            except Exception as e:
                logger.warning(f"Error during unsubscribe: {e}")


def _log_toggle_failure(future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.error(f"Toggle failed: {future.exception()}")

"""Terminal chat REPL with streamed answers and cited sources."""

import asyncio
import logging
from typing import Optional, Sequence
from urllib.parse import urlparse

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from ..chat.service import ChatService
from ..errors import ChatStreamError
from ..models.chat import ChatRole, ChatTurn, CitationEntry

logger = logging.getLogger(__name__)


def citation_label(citation: CitationEntry) -> str:
    """Title if the source has one, otherwise its hostname."""
    if citation.title:
        return citation.title
    return urlparse(citation.uri).hostname or citation.uri


def render_sources(citations: Sequence[CitationEntry]) -> Optional[Text]:
    if not citations:
        return None
    text = Text("Sources\n", style="bold dim")
    for citation in citations:
        text.append("• ")
        text.append(citation_label(citation), style=f"link {citation.uri} blue")
        text.append("\n")
    return text


def render_turn(turn: ChatTurn, waiting: bool = False) -> Panel:
    if turn.role is ChatRole.USER:
        return Panel(Text(turn.text), title="You", title_align="right", border_style="blue")

    if waiting and not turn.text:
        body = [Text("Thinking...", style="dim italic")]
    else:
        style = "red" if turn.text.startswith("Error: ") else ""
        body = [Text(turn.text, style=style)]
    sources = render_sources(turn.citations)
    if sources is not None:
        body.append(sources)
    return Panel(Group(*body), title="Gemini", title_align="left", border_style="green")


class ChatScreen:
    """Prompt loop: read a line, stream the answer, repeat until quit."""

    def __init__(self, service: ChatService, thinking: bool = False, console: Optional[Console] = None):
        self.service = service
        self.thinking = thinking
        self.console = console or Console()

    async def run(self) -> None:
        mode = "thinking mode" if self.thinking else "search grounded"
        self.console.print(f"💬 LiveScribe chat ({mode}). Type /quit to exit, /reset to clear history.", style="bold blue")
        while True:
            try:
                prompt = await asyncio.to_thread(self.console.input, "[bold blue]> [/bold blue]")
            except (EOFError, KeyboardInterrupt):
                break
            prompt = prompt.strip()
            if not prompt:
                continue
            if prompt in ("/quit", "/exit"):
                break
            if prompt == "/reset":
                self.service.reset()
                self.console.print("History cleared.", style="dim")
                continue
            await self.ask(prompt)

    async def ask(self, prompt: str) -> Optional[ChatTurn]:
        turn = ChatTurn(role=ChatRole.MODEL)
        with Live(render_turn(turn, waiting=True), console=self.console, refresh_per_second=12) as live:
            try:
                async for turn in self.service.stream_reply(prompt, thinking=self.thinking):
                    live.update(render_turn(turn, waiting=True))
            except ChatStreamError as e:
                logger.warning(f"Chat request failed: {e}")
            live.update(render_turn(turn))
        return turn

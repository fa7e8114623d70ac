"""Streaming chat against Gemini with Google Search grounding."""

import logging
from typing import Any, AsyncIterator, Callable, List, Optional

from google.genai import types

from .aggregator import ChatStreamAggregator
from ..config import LiveScribeConfig, ServiceCredentials
from ..errors import ChatStreamError
from ..models.chat import ChatRole, ChatTurn, CitationEntry
from ..transcription.gemini_live import default_client_factory

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ServiceCredentials], Any]


def extract_citations(chunk) -> List[CitationEntry]:
    """Pull web sources out of a response chunk's grounding metadata."""
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return []
    metadata = candidates[0].grounding_metadata
    if metadata is None or not metadata.grounding_chunks:
        return []
    return [
        CitationEntry(uri=grounding.web.uri, title=grounding.web.title or None)
        for grounding in metadata.grounding_chunks
        if grounding.web is not None and grounding.web.uri
    ]


class ChatService:
    """Multi-turn chat whose answers stream in as replacement ``ChatTurn``s."""

    def __init__(
        self,
        credentials: ServiceCredentials,
        model: str = "gemini-2.5-flash",
        thinking_model: str = "gemini-2.5-pro",
        thinking_budget: int = 32768,
        client_factory: ClientFactory = default_client_factory,
    ):
        self.credentials = credentials
        self.model = model
        self.thinking_model = thinking_model
        self.thinking_budget = thinking_budget
        self._client_factory = client_factory
        self.history: List[ChatTurn] = []

    @classmethod
    def from_config(cls, config: LiveScribeConfig) -> "ChatService":
        return cls(
            credentials=ServiceCredentials(api_key=config.get_api_key()),
            model=config.get('chat.model', 'gemini-2.5-flash'),
            thinking_model=config.get('chat.thinking_model', 'gemini-2.5-pro'),
            thinking_budget=config.get('chat.thinking_budget', 32768),
        )

    def build_contents(self, prompt: str) -> List[types.Content]:
        contents = [
            types.Content(role=turn.role.value, parts=[types.Part(text=turn.text)])
            for turn in self.history
        ]
        contents.append(types.Content(role=ChatRole.USER.value, parts=[types.Part(text=prompt)]))
        return contents

    def build_config(self, thinking: bool) -> types.GenerateContentConfig:
        if thinking:
            return types.GenerateContentConfig(
                thinking_config=types.ThinkingConfig(thinking_budget=self.thinking_budget),
            )
        return types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())],
        )

    async def stream_reply(self, prompt: str, thinking: bool = False) -> AsyncIterator[ChatTurn]:
        """Send a prompt and yield the model turn as it grows.

        On failure the last yielded turn carries an error marker and
        ``ChatStreamError`` is raised afterwards.
        """
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Prompt must not be empty")

        model = self.thinking_model if thinking else self.model
        contents = self.build_contents(prompt)
        self.history.append(ChatTurn(role=ChatRole.USER, text=prompt))

        aggregator = ChatStreamAggregator()
        aggregator.begin()
        error: Optional[Exception] = None
        try:
            client = self._client_factory(self.credentials)
            stream = await client.aio.models.generate_content_stream(
                model=model,
                contents=contents,
                config=self.build_config(thinking),
            )
            async for chunk in stream:
                yield aggregator.apply_chunk(chunk.text, extract_citations(chunk))
        except Exception as e:
            logger.error(f"Chat stream failed: {e}")
            error = e
            yield aggregator.fail(str(e) or ChatStreamError.user_message)

        turn = aggregator.finish()
        self.history.append(turn)
        logger.info(f"Chat turn finished ({len(turn.text)} chars, {len(turn.citations)} sources)")
        if error is not None:
            raise ChatStreamError(str(error)) from error

    def reset(self) -> None:
        self.history.clear()

"""Transcript and session-state publishing over pypubsub."""

import logging
from typing import Optional, Sequence

from pubsub import pub

from ..models.events import SessionStateEvent, TranscriptUpdateEvent
from ..models.session import SessionState
from ..models.transcription import TranscriptSegment

logger = logging.getLogger(__name__)

TRANSCRIPT_TOPIC = "transcript_events"
STATE_TOPIC = "session_state_events"


class TranscriptPublisher:
    """Publishes transcript snapshots and state changes for UI subscribers."""

    def __init__(self, transcript_topic: str = TRANSCRIPT_TOPIC, state_topic: str = STATE_TOPIC):
        """Initialize transcript publisher.

        Args:
            transcript_topic: Topic for TranscriptUpdateEvent messages
            state_topic: Topic for SessionStateEvent messages
        """
        self.transcript_topic = transcript_topic
        self.state_topic = state_topic
        logger.info(f"TranscriptPublisher initialized with topics: {transcript_topic}, {state_topic}")

    def publish_transcript(self, generation: int, segments: Sequence[TranscriptSegment]) -> None:
        event = TranscriptUpdateEvent(generation=generation, segments=tuple(segments))
        self._send(self.transcript_topic, event)

    def publish_state(
        self,
        generation: int,
        state: SessionState,
        previous_state: SessionState,
        error: Optional[str] = None,
    ) -> None:
        event = SessionStateEvent(
            generation=generation,
            state=state,
            previous_state=previous_state,
            error=error,
        )
        self._send(self.state_topic, event)
        logger.debug(f"Published state {previous_state.value} -> {state.value} (generation {generation})")

    def _send(self, topic: str, event) -> None:
        # A broken subscriber must not take the pipeline down with it
        try:
            pub.sendMessage(topic, event=event)
        except Exception:
            logger.exception(f"Subscriber failed on topic {topic}")

"""Transcript aggregation: folds partial/final events into display segments.

``fold_transcript`` is the whole algorithm and has no state of its own, so a
scripted sequence of ``(text, is_final)`` events can be replayed against it.
``TranscriptAggregator`` keeps the current list for the session controller.
"""

import logging
from typing import Iterable, List, Sequence, Tuple

from ..models.transcription import TranscriptSegment

logger = logging.getLogger(__name__)


def fold_transcript(
    segments: Sequence[TranscriptSegment], text: str, is_final: bool
) -> List[TranscriptSegment]:
    """Return a new segment list with one transcript event applied.

    The last segment is replaced while it is still open; otherwise the event
    starts a new segment. A final event also appends an empty open segment
    so later partial text has somewhere to go.
    """
    updated = list(segments)
    segment = TranscriptSegment(text=text, is_final=is_final)

    if updated and not updated[-1].is_final:
        updated[-1] = segment
    else:
        updated.append(segment)

    if is_final:
        updated.append(TranscriptSegment(text="", is_final=False))

    return updated


def replay(events: Iterable[Tuple[str, bool]]) -> List[TranscriptSegment]:
    """Fold a whole event sequence starting from an empty transcript."""
    segments: List[TranscriptSegment] = []
    for text, is_final in events:
        segments = fold_transcript(segments, text, is_final)
    return segments


class TranscriptAggregator:
    """Holds the ordered segment list for one transcription session."""

    def __init__(self):
        self._segments: List[TranscriptSegment] = []
        self.reset()

    def reset(self) -> None:
        """Start over with a single empty open segment."""
        self._segments = [TranscriptSegment(text="", is_final=False)]

    def apply(self, text: str, is_final: bool) -> Tuple[TranscriptSegment, ...]:
        self._segments = fold_transcript(self._segments, text, is_final)
        if is_final:
            logger.debug(f"Final segment: '{text[:50]}'")
        return self.segments

    @property
    def segments(self) -> Tuple[TranscriptSegment, ...]:
        return tuple(self._segments)

    @property
    def final_count(self) -> int:
        return sum(1 for segment in self._segments if segment.is_final)

    def full_text(self, include_partial: bool = True) -> str:
        """Join segment texts into a single display string."""
        parts = [
            segment.text for segment in self._segments
            if segment.text and (include_partial or segment.is_final)
        ]
        return " ".join(parts)

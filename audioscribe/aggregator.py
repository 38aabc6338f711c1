"""Merges timed transcription fragments into subtitle-sized chunks."""

import logging
from typing import Iterable, Iterator, List, Optional

from .models import SubtitleChunk, TimedFragment

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS_PER_CHUNK = 80
DEFAULT_MAX_CHUNK_DURATION = 6.0 # seconds
SENTENCE_ENDINGS = (".", "!", "?")

class SegmentAggregator:
    """
    Streams fragments into chunks in a single pass.

    A fragment is appended to the open chunk unless doing so would make the
    chunk last longer than ``max_chunk_duration``, grow past
    ``max_chars_per_chunk``, or the open chunk already ends a sentence. In
    any of those cases the open chunk is emitted and the fragment starts a
    new one. A single fragment longer than the character limit is emitted
    whole; the limit never truncates text.
    """

    def __init__(
        self,
        max_chars_per_chunk: int = DEFAULT_MAX_CHARS_PER_CHUNK,
        max_chunk_duration: float = DEFAULT_MAX_CHUNK_DURATION
    ):
        if max_chars_per_chunk <= 0:
            raise ValueError(f"max_chars_per_chunk must be positive, got {max_chars_per_chunk}")
        if max_chunk_duration <= 0:
            raise ValueError(f"max_chunk_duration must be positive, got {max_chunk_duration}")
        self.max_chars_per_chunk = max_chars_per_chunk
        self.max_chunk_duration = max_chunk_duration

    def _should_break(self, text: str, start: float, fragment: TimedFragment, fragment_text: str) -> bool:
        candidate_duration = fragment.end - start
        candidate_length = len(text) + 1 + len(fragment_text)
        ends_sentence = text.endswith(SENTENCE_ENDINGS)
        return (
            candidate_duration > self.max_chunk_duration
            or candidate_length > self.max_chars_per_chunk
            or ends_sentence
        )

    def iter_chunks(self, fragments: Iterable[TimedFragment]) -> Iterator[SubtitleChunk]:
        """
        Lazily yields finished chunks while consuming ``fragments``.

        Args:
            fragments: Time-ordered fragments. Consumed exactly once.

        Yields:
            SubtitleChunk objects in start-time order.
        """
        text: Optional[str] = None
        start = end = 0.0

        for fragment in fragments:
            fragment_text = fragment.text.strip()
            if not fragment_text:
                continue

            if text is None:
                text, start, end = fragment_text, fragment.start, fragment.end
            elif self._should_break(text, start, fragment, fragment_text):
                yield SubtitleChunk(text=text, start=start, end=end)
                text, start, end = fragment_text, fragment.start, fragment.end
            else:
                text = f"{text} {fragment_text}"
                end = fragment.end

        if text is not None:
            yield SubtitleChunk(text=text, start=start, end=end)

    def aggregate(self, fragments: Iterable[TimedFragment]) -> List[SubtitleChunk]:
        """Consumes ``fragments`` completely and returns the list of chunks."""
        chunks = list(self.iter_chunks(fragments))
        logger.debug(
            f"Aggregated fragments into {len(chunks)} chunks "
            f"(max_chars={self.max_chars_per_chunk}, max_duration={self.max_chunk_duration}s)"
        )
        return chunks


def aggregate(
    fragments: Iterable[TimedFragment],
    max_chars_per_chunk: int = DEFAULT_MAX_CHARS_PER_CHUNK,
    max_chunk_duration: float = DEFAULT_MAX_CHUNK_DURATION
) -> List[SubtitleChunk]:
    """Convenience wrapper around SegmentAggregator.aggregate."""
    return SegmentAggregator(max_chars_per_chunk, max_chunk_duration).aggregate(fragments)

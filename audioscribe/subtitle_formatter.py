"""Handles rendering subtitle chunks as SRT or plain text."""

import logging
from abc import ABC, abstractmethod
from typing import Sequence, Union

from .models import SubtitleChunk, TimestampStyle, TranscriptFormat
from .utils import format_time_srt, format_timestamp_readable, format_timestamp_seconds

logger = logging.getLogger(__name__)

class TranscriptFormatter(ABC):
    """Abstract base class for transcript formatters."""

    @abstractmethod
    def format(self, chunks: Sequence[SubtitleChunk]) -> str:
        """
        Renders the chunks as the full text of an output file.

        Args:
            chunks: Finished chunks in start-time order.

        Returns:
            The formatted transcript. Formatting is a pure function of the
            chunks and the formatter's settings.
        """
        pass


class SRTFormatter(TranscriptFormatter):
    """Formats chunks into the SRT (SubRip Text) format."""

    def format(self, chunks: Sequence[SubtitleChunk]) -> str:
        """
        Numbered cues separated by one blank line, without a trailing blank line::

            1
            00:00:00,000 --> 00:00:02,500
            Hello world

            2
            00:00:02,500 --> 00:00:05,000
            Second line
        """
        cues = []
        for index, chunk in enumerate(chunks, start=1):
            start_time_str = format_time_srt(chunk.start)
            end_time_str = format_time_srt(chunk.end)
            cues.append(f"{index}\n{start_time_str} --> {end_time_str}\n{chunk.text}\n")
        logger.debug(f"Formatted {len(cues)} SRT cues.")
        return "\n".join(cues)

    @staticmethod
    def can_format(chunks: Sequence[SubtitleChunk]) -> bool:
        """True when there is at least one chunk and every chunk has valid, positive-length timing."""
        if not chunks:
            return False
        return all(chunk.start >= 0 and chunk.end > chunk.start for chunk in chunks)


class PlainTextFormatter(TranscriptFormatter):
    """One chunk per line, optionally prefixed with a bracketed timestamp."""

    def __init__(self, timestamp_style: Union[TimestampStyle, str] = TimestampStyle.NONE):
        self.timestamp_style = TimestampStyle(timestamp_style)

    def _timestamp(self, seconds: float) -> str:
        if self.timestamp_style is TimestampStyle.READABLE:
            return format_timestamp_readable(seconds)
        if self.timestamp_style is TimestampStyle.SECONDS:
            return format_timestamp_seconds(seconds)
        return ""

    def format(self, chunks: Sequence[SubtitleChunk]) -> str:
        lines = []
        for chunk in chunks:
            if self.timestamp_style is TimestampStyle.NONE:
                lines.append(chunk.text)
            else:
                lines.append(f"{self._timestamp(chunk.start)} {chunk.text}")
        return "\n".join(lines).strip()


def get_formatter(
    output_format: Union[TranscriptFormat, str],
    timestamp_style: Union[TimestampStyle, str] = TimestampStyle.NONE
) -> TranscriptFormatter:
    """
    Returns the formatter for an output format.

    Raises:
        ValueError: If the format or timestamp style is unknown.
    """
    if not isinstance(output_format, TranscriptFormat):
        output_format = TranscriptFormat(output_format.lower())
    if output_format is TranscriptFormat.SRT:
        return SRTFormatter()
    return PlainTextFormatter(timestamp_style)

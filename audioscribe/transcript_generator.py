"""Orchestrates the transcription pipeline for a single audio file."""

import logging
import os
import time
from typing import Callable, Iterable, Iterator, List, Optional

from .aggregator import SegmentAggregator
from .audio_probe import AudioProbe
from .exceptions import (
    AnalysisError,
    AudioScribeError,
    EmptyTranscriptionError,
    InputNotFoundError,
    ModelProvisioningError,
    OutputWriteError,
)
from .models import SubtitleChunk, TimedFragment, TimestampStyle, TranscriptFormat, TranscriptionResult
from .progress import ProgressTracker
from .subtitle_formatter import get_formatter
from .transcriber import RecognitionEngine
from .utils import write_text_atomic

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

class TranscriptGenerator:
    """
    Runs one audio file through model provisioning, analysis, aggregation,
    formatting and the final write.
    """

    def __init__(
        self,
        engine: RecognitionEngine,
        output_format: TranscriptFormat = TranscriptFormat.TXT,
        aggregator: Optional[SegmentAggregator] = None,
        audio_probe: Optional[AudioProbe] = None,
        timestamp_style: TimestampStyle = TimestampStyle.NONE
    ):
        """
        Initializes the TranscriptGenerator.

        Args:
            engine: The recognition engine used for every file.
            output_format: Format of the written transcript.
            aggregator: Chunking rules. Defaults to 80 chars / 6 seconds.
            audio_probe: Used to read the total duration for progress reporting.
            timestamp_style: Line prefix for plain-text output.
        """
        self.engine = engine
        self.output_format = TranscriptFormat(output_format)
        self.aggregator = aggregator or SegmentAggregator()
        self.audio_probe = audio_probe or AudioProbe()
        self.formatter = get_formatter(self.output_format, timestamp_style)

    def _ensure_model(self, locale: str) -> None:
        try:
            self.engine.ensure_model(locale)
        except ModelProvisioningError as e:
            raise ModelProvisioningError(f"Language model not available for '{locale}': {e}") from e

    @staticmethod
    def _observe(
        fragments: Iterable[TimedFragment],
        tracker: ProgressTracker,
        on_progress: Optional[ProgressCallback]
    ) -> Iterator[TimedFragment]:
        """Passes fragments through unchanged while feeding their end-times to the tracker."""
        for fragment in fragments:
            ratio = tracker.observe(fragment.end)
            if on_progress is not None:
                on_progress(ratio)
            yield fragment

    def _transcribe(
        self,
        audio_path: str,
        locale: str,
        tracker: ProgressTracker,
        on_progress: Optional[ProgressCallback]
    ) -> List[SubtitleChunk]:
        try:
            fragments = self.engine.analyze(audio_path, locale)
            return self.aggregator.aggregate(self._observe(fragments, tracker, on_progress))
        except AudioScribeError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error during analysis of {audio_path}: {e}", exc_info=True)
            raise AnalysisError(f"Speech analysis failed for {audio_path}: {e}") from e

    def _write_output(self, output_path: str, content: str) -> None:
        try:
            write_text_atomic(output_path, content)
        except OSError as e:
            logger.error(f"Failed to write transcript to {output_path}: {e}", exc_info=True)
            raise OutputWriteError(f"Could not write transcript to {output_path}: {e}") from e

    def generate(
        self,
        audio_path: str,
        output_path: str,
        locale: str,
        on_progress: Optional[ProgressCallback] = None
    ) -> TranscriptionResult:
        """
        Executes the full pipeline for a single audio file.

        Args:
            audio_path: Path to the input audio file.
            output_path: Path of the transcript to write (overwritten atomically).
            locale: Locale identifier of the spoken language, e.g. "en-US".
            on_progress: Called with the completion ratio after every fragment.

        Returns:
            A successful TranscriptionResult.

        Raises:
            InputNotFoundError, LocaleUnsupportedError, ModelProvisioningError,
            AnalysisError, EmptyTranscriptionError, OutputWriteError: for the
            step that failed.
        """
        start_time = time.time()
        logger.info(f"--- Starting transcription for: {audio_path} ---")

        if not os.path.isfile(audio_path):
            raise InputNotFoundError(f"Audio file not found: {audio_path}")

        # 1. Provision the model
        logger.info(f"Step 1: Ensuring model for locale: {locale}")
        self._ensure_model(locale)

        # 2. Probe duration
        total_duration = self.audio_probe.probe_duration(audio_path)
        logger.info(f"Step 2: Audio duration is {total_duration:.2f}s")

        # 3. Analyze and aggregate
        logger.info("Step 3: Analyzing audio...")
        tracker = ProgressTracker(total_duration)
        chunks = self._transcribe(audio_path, locale, tracker, on_progress)
        character_count = sum(len(chunk.text) for chunk in chunks)
        logger.info(f"Analysis complete. {len(chunks)} chunks, {character_count} characters.")
        if character_count == 0:
            raise EmptyTranscriptionError(
                f"No transcription produced for {audio_path}. The speech model may not be properly installed."
            )

        # 4. Format and write
        logger.info(f"Step 4: Writing {self.output_format.value.upper()} to: {output_path}")
        self._write_output(output_path, self.formatter.format(chunks))

        elapsed = time.time() - start_time
        logger.info(f"--- Transcription completed in {elapsed:.2f} seconds ---")
        return TranscriptionResult(
            success=True,
            output_path=output_path,
            duration=total_duration,
            elapsed_time=elapsed
        )

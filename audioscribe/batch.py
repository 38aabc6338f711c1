"""
Batch transcription.

Queues every given audio file (directories are scanned, smallest file
first) and transcribes them one after another, writing each transcript
next to its source.
"""

import argparse
import logging
import os
import sys
import time
from typing import Iterable, List, Optional, Tuple

from tqdm import tqdm

from .audio_probe import AudioProbe
from .cli import EngineFactory, add_common_arguments, apply_overrides, build_engine, build_generator, load_cli_config
from .exceptions import ConfigurationError, EngineUnavailableError
from .log_setup import setup_logging
from .models import StatusKind, WorkItem
from .progress import ConsoleProgressBar
from .transcription_queue import TranscriptionQueue

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {
    ".aac", ".aiff", ".flac", ".m4a", ".mp3", ".mp4", ".mov", ".ogg", ".opus", ".wav", ".webm",
}

def find_and_sort_audio(input_dir: str) -> List[Tuple[str, int]]:
    """
    Finds all supported audio/video files in the input directory and sorts them by size.

    Args:
        input_dir: The directory to search.

    Returns:
        A list of (filepath, filesize) tuples, smallest first.

    Raises:
        FileNotFoundError: If the input directory doesn't exist.
        ValueError: If the input path is not a directory.
    """
    if not os.path.exists(input_dir):
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    if not os.path.isdir(input_dir):
        raise ValueError(f"Input path is not a directory: {input_dir}")

    files = []
    logger.info(f"Scanning directory for audio files: {input_dir}")
    for filename in os.listdir(input_dir):
        if os.path.splitext(filename)[1].lower() in SUPPORTED_EXTENSIONS:
            filepath = os.path.join(input_dir, filename)
            try:
                if os.path.isfile(filepath):
                    files.append((filepath, os.path.getsize(filepath)))
            except OSError as e:
                logger.warning(f"Could not access file {filepath}: {e}. Skipping.")

    files.sort(key=lambda item: item[1])
    logger.info(f"Found {len(files)} audio files. Sorted by size (smallest first).")
    return files

def collect_inputs(inputs: Iterable[str]) -> List[str]:
    """
    Expands directories and keeps files in the order given.

    Paths that do not exist are kept so the queue records them as failed.
    """
    paths: List[str] = []
    for path in inputs:
        if os.path.isdir(path):
            paths.extend(filepath for filepath, _ in find_and_sort_audio(path))
        else:
            paths.append(path)
    return paths


class BatchRunner:
    """Feeds a list of files through one TranscriptionQueue with console progress."""

    def __init__(self, queue: TranscriptionQueue, show_progress: bool = True):
        self.queue = queue
        self.show_progress = show_progress
        self._files_bar: Optional[tqdm] = None
        self._item_bar: Optional[ConsoleProgressBar] = None
        queue.on_status_change = self._on_status_change
        queue.on_progress = self._on_progress

    def _on_status_change(self, item: WorkItem) -> None:
        kind = item.status.kind
        if kind is StatusKind.PROCESSING:
            if self._files_bar is not None:
                self._files_bar.set_description(f"Processing: {item.file_name[:30]}")
            self._item_bar = ConsoleProgressBar(desc=f"{item.file_name[:30]} ", disable=not self.show_progress)
        elif item.status.is_terminal:
            if self._item_bar is not None:
                if kind is StatusKind.COMPLETED:
                    self._item_bar.finish()
                else:
                    self._item_bar.close()
                self._item_bar = None
            if self._files_bar is not None:
                self._files_bar.update(1)
            logger.info(f"{item.file_name}: {item.status.description}")

    def _on_progress(self, item: WorkItem, ratio: float) -> None:
        if self._item_bar is not None:
            self._item_bar.render(ratio)

    def run(self, paths: List[str]) -> Tuple[int, int]:
        """
        Queues every path and drives the queue to idle.

        Returns:
            (completed, failed) counts.
        """
        with tqdm(total=len(paths), unit="file", desc="Starting Batch", disable=not self.show_progress) as pbar:
            self._files_bar = pbar
            try:
                for path in paths:
                    self.queue.add_file(path, auto_start=False)
                self.queue.process_next()
            finally:
                self._files_bar = None

        counts = self.queue.counts()
        return counts[StatusKind.COMPLETED], counts[StatusKind.FAILED]


def run_batch_processing(
    argv: Optional[List[str]] = None,
    engine_factory: EngineFactory = build_engine,
    audio_probe: Optional[AudioProbe] = None
) -> int:
    """Parses arguments, sets up, and runs the batch transcription. Returns the exit code."""
    parser = argparse.ArgumentParser(
        prog="audioscribe-batch",
        description="AudioScribe Batch: Transcribe many audio files, one at a time."
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        help="Audio files and/or directories containing audio files."
    )
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    # --- Setup Logging (Initial) ---
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    setup_logging(log_level=log_level, log_dir=None)

    # --- Load Configuration ---
    try:
        config = apply_overrides(load_cli_config(args.config), args)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.critical(f"Failed to load configuration: {e}")
        return 1

    # --- Re-configure Logging (Final) ---
    setup_logging(log_level=log_level, log_dir=config['log_dir'], log_file=config['log_file'])

    # --- Collect Inputs ---
    try:
        paths = collect_inputs(args.inputs)
    except (FileNotFoundError, ValueError) as e:
        logger.critical(f"Input directory error: {e}")
        return 1
    if not paths:
        logger.warning("No audio files found. Exiting.")
        return 0

    # --- Initialize Components (ONCE) ---
    try:
        engine = engine_factory(config)
    except EngineUnavailableError as e:
        logger.critical(f"Recognition engine unavailable: {e}")
        return 2
    except ValueError as e:
        logger.critical(f"Could not initialize recognition engine: {e}")
        return 1

    queue = TranscriptionQueue(build_generator(config, engine, audio_probe), locale=config['locale'])
    runner = BatchRunner(queue, show_progress=not args.no_progress)

    batch_start_time = time.time()
    logger.info(f"--- Starting Batch Transcription for {len(paths)} files ---")
    try:
        completed, failed = runner.run(paths)
    except EngineUnavailableError as e:
        logger.critical(f"Recognition engine unavailable: {e}")
        return 2
    except KeyboardInterrupt:
        logger.warning("Batch process interrupted by user (Ctrl+C). Exiting.")
        return 1

    logger.info("--- Batch Transcription Finished ---")
    logger.info(f"Total time: {time.time() - batch_start_time:.2f} seconds")
    logger.info(f"Successfully processed: {completed}/{len(paths)} files")
    logger.info(f"Failed: {failed}/{len(paths)} files")
    for item in queue.items:
        if item.status.kind is StatusKind.FAILED:
            logger.info(f"  {item.source_path}: {item.status.reason}")

    return 1 if failed > 0 else 0


def main() -> None:
    sys.exit(run_batch_processing())

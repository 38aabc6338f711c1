"""Reads audio file metadata using ffprobe."""

import ffmpeg
import os
import logging
from typing import Optional

from .exceptions import AnalysisError, InputNotFoundError

logger = logging.getLogger(__name__)

class AudioProbe:
    """Probes audio files for their total duration."""

    def __init__(self, ffprobe_path: Optional[str] = None):
        """
        Initializes the AudioProbe.

        Args:
            ffprobe_path: Optional path to the ffprobe executable.
                          If None, assumes ffprobe is in the system PATH.
        """
        self.ffprobe_cmd = ffprobe_path or 'ffprobe'
        logger.debug(f"Using ffprobe command: {self.ffprobe_cmd}")

    def probe_duration(self, audio_path: str) -> float:
        """
        Returns the duration of an audio file in seconds.

        The container duration is preferred; the first audio stream's duration
        is used when the container does not report one.

        Raises:
            InputNotFoundError: If the file does not exist.
            AnalysisError: If ffprobe cannot read the file.
        """
        if not os.path.exists(audio_path):
            raise InputNotFoundError(f"File not found at path: {audio_path}")

        try:
            meta = ffmpeg.probe(audio_path, cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='ignore').strip() if e.stderr else "No stderr output"
            logger.error(f"ffprobe error for {audio_path}: {stderr_output}")
            raise AnalysisError(f"Cannot open audio file: {stderr_output}. File: {audio_path}") from e
        except Exception as e:
            logger.error(f"Unexpected error probing {audio_path}: {e}", exc_info=True)
            raise AnalysisError(f"Cannot open audio file: {e}. File: {audio_path}") from e

        streams = meta.get("streams", [])
        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)
        if audio_stream is None:
            raise AnalysisError(f"No audio stream found in file: {audio_path}")

        raw_duration = meta.get("format", {}).get("duration") or audio_stream.get("duration")
        duration = float(raw_duration) if raw_duration is not None else 0.0
        logger.debug(f"Probed duration of {audio_path}: {duration:.2f}s")
        return duration

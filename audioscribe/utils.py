"""Utility functions for AudioScribe."""

import locale
import logging
import math
import os
import tempfile
from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e

def format_time_srt(seconds: float) -> str:
    """
    Formats seconds into SRT time format HH:MM:SS,mmm.

    Hours are not wrapped at 24. The value is rounded to whole milliseconds
    first so that e.g. 2.9996 renders as 00:00:03,000.

    Args:
        seconds: Time in seconds.

    Returns:
        Formatted time string.
    """
    if seconds < 0:
        seconds = 0.0 # Ensure non-negative time
    milliseconds = round(seconds * 1000)
    hrs = milliseconds // 3600000
    milliseconds %= 3600000
    mins = milliseconds // 60000
    milliseconds %= 60000
    secs = milliseconds // 1000
    milliseconds %= 1000
    return f"{hrs:02d}:{mins:02d}:{secs:02d},{milliseconds:03d}"

def format_timestamp_readable(seconds: float) -> str:
    """Formats seconds as [MM:SS], or [HH:MM:SS] once an hour is reached. No milliseconds."""
    if seconds < 0:
        seconds = 0.0
    hrs = int(seconds // 3600)
    mins = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hrs > 0:
        return f"[{hrs:02d}:{mins:02d}:{secs:02d}]"
    return f"[{mins:02d}:{secs:02d}]"

def format_timestamp_seconds(seconds: float) -> str:
    """Formats seconds as [S.Ds], e.g. [83.5s]."""
    return f"[{seconds:.1f}s]"

def output_path_for(source_path: str, extension: str) -> str:
    """Returns source_path with its extension replaced, e.g. talk.m4a -> talk.srt."""
    base, _ = os.path.splitext(source_path)
    return f"{base}.{extension.lstrip('.')}"

def write_text_atomic(path: str, content: str) -> None:
    """
    Writes UTF-8 text to path so that readers never observe a partial file.

    The content goes to a temporary file in the same directory which then
    replaces the target.

    Raises:
        OSError: If the directory is not writable or the replace fails.
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".audioscribe_", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise

def system_locale() -> str:
    """Returns the process locale as a BCP-47 style identifier, e.g. 'en-US'."""
    lang, _ = locale.getlocale()
    if not lang or lang in ("C", "POSIX"):
        return "en-US"
    return lang.replace("_", "-")

def language_code(locale_id: str) -> str:
    """Primary language subtag of a locale identifier: 'en-US' -> 'en', 'pt_BR' -> 'pt'."""
    return locale_id.replace("_", "-").split("-")[0].lower()

def clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))

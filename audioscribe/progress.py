"""Progress reporting for a single transcription."""

import logging
import sys
from typing import Optional

from tqdm import tqdm

from .utils import clamp

logger = logging.getLogger(__name__)

class ProgressTracker:
    """
    Turns fragment end-times into a completion ratio in [0, 1].

    The ratio is the largest end-time observed so far divided by the total
    audio duration, so it never decreases. A zero (or unknown) total duration
    reports 1.0 once the first fragment has been seen, and 0.0 before that.
    """

    def __init__(self, total_duration: float):
        self.total_duration = max(0.0, total_duration or 0.0)
        self.max_end_time = 0.0
        self._seen_fragment = False

    def observe(self, end_time: float) -> float:
        """Records one fragment end-time and returns the updated ratio."""
        self.max_end_time = max(self.max_end_time, end_time)
        self._seen_fragment = True
        return self.ratio

    @property
    def ratio(self) -> float:
        if not self._seen_fragment:
            return 0.0
        if self.total_duration == 0:
            return 1.0
        return clamp(self.max_end_time / self.total_duration, 0.0, 1.0)


class ConsoleProgressBar:
    """Renders a ratio as a fixed-width tqdm bar with an integer percentage."""

    def __init__(self, desc: Optional[str] = None, width: int = 40, file=None, disable: bool = False):
        self._bar = tqdm(
            total=100,
            desc=desc,
            file=file if file is not None else sys.stderr,
            disable=disable,
            bar_format="{desc}[{bar:%d}] {n_fmt}%%" % width,
            leave=True,
        )

    @property
    def percent(self) -> int:
        return int(self._bar.n)

    def render(self, progress: float) -> None:
        percent = int(clamp(progress, 0.0, 1.0) * 100)
        if percent != self._bar.n:
            self._bar.n = percent
            self._bar.refresh()

    def finish(self) -> None:
        self.render(1.0)
        self._bar.close()

    def close(self) -> None:
        self._bar.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

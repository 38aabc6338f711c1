"""Shared fakes and fixtures for the audioscribe test suite.

The recognition engine and the duration probe are external collaborators;
the fakes below stand in for Whisper and ffprobe so pipeline, queue and CLI
tests run without models or binaries.
"""

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import pytest

from audioscribe.exceptions import AnalysisError, ModelProvisioningError
from audioscribe.models import TimedFragment
from audioscribe.transcriber import RecognitionEngine


def make_fragments(*triples: Tuple[str, float, float]) -> List[TimedFragment]:
    """Build fragments from (text, start, end) tuples."""
    return [TimedFragment(text=text, start=start, end=end) for text, start, end in triples]


HELLO_FRAGMENTS = make_fragments(
    ("Hello", 0.0, 0.4),
    ("world.", 0.5, 1.0),
    ("Second", 1.2, 1.6),
    ("line", 1.7, 2.0),
)


class FakeEngine(RecognitionEngine):
    """Scripted engine: fragments per file name, optional failures."""

    def __init__(
        self,
        fragments: Optional[Dict[str, Sequence[TimedFragment]]] = None,
        default: Sequence[TimedFragment] = HELLO_FRAGMENTS,
        supported: Sequence[str] = ("en",),
        installed: bool = True,
        install_error: Optional[str] = None,
        analysis_errors: Optional[Dict[str, str]] = None,
    ):
        self.fragments = fragments or {}
        self.default = list(default)
        self.supported = set(supported)
        self.installed = installed
        self.install_error = install_error
        self.analysis_errors = analysis_errors or {}
        self.install_calls = 0
        self.analyzed: List[str] = []
        self.observer = None  # called with the path when analysis starts

    def is_supported(self, locale: str) -> bool:
        return locale.split("-")[0].lower() in self.supported

    def supported_locales(self) -> Dict[str, str]:
        names = {"de": "German", "en": "English", "es": "Spanish", "fr": "French"}
        return {code: names.get(code, code) for code in sorted(self.supported, key=lambda c: names.get(c, c))}

    def is_installed(self, locale: str) -> bool:
        return self.installed

    def install(self, locale: str) -> None:
        self.install_calls += 1
        if self.install_error:
            raise ModelProvisioningError(self.install_error)
        self.installed = True

    def analyze(self, audio_path: str, locale: str) -> Iterator[TimedFragment]:
        self.analyzed.append(audio_path)
        if self.observer is not None:
            self.observer(audio_path)
        name = audio_path.replace("\\", "/").rsplit("/", 1)[-1]
        if name in self.analysis_errors:
            raise AnalysisError(self.analysis_errors[name])
        return iter(list(self.fragments.get(name, self.default)))


class FakeProbe:
    """Duration probe returning a fixed duration."""

    def __init__(self, duration: float = 2.0):
        self.duration = duration

    def probe_duration(self, audio_path: str) -> float:
        return self.duration


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def audio_file(tmp_path):
    """An (empty) audio file on disk; the fake engine never decodes it."""
    path = tmp_path / "talk.wav"
    path.write_bytes(b"RIFF")
    return path


@pytest.fixture(autouse=True)
def restore_root_logging():
    """The CLIs reconfigure the root logger; put its handlers back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)

"""Handles speech recognition using Whisper."""

import whisper
import logging
import os
import shutil
import torch
from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

from .models import TimedFragment
from .exceptions import (
    AnalysisError,
    EngineUnavailableError,
    InputNotFoundError,
    LocaleUnsupportedError,
    ModelProvisioningError,
)
from .utils import language_code

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 30.0 # Whisper's own context length
PROMPT_TAIL_CHARS = 200

class RecognitionEngine(ABC):
    """Abstract base class for speech recognition engines."""

    @abstractmethod
    def is_supported(self, locale: str) -> bool:
        """Whether the engine can transcribe the given locale at all."""
        pass

    @abstractmethod
    def is_installed(self, locale: str) -> bool:
        """Whether the model for the locale is available without a download."""
        pass

    @abstractmethod
    def install(self, locale: str) -> None:
        """
        Downloads and installs the model for the locale.

        Raises:
            ModelProvisioningError: If the model cannot be obtained.
        """
        pass

    @abstractmethod
    def analyze(self, audio_path: str, locale: str) -> Iterator[TimedFragment]:
        """
        Runs recognition over an audio file.

        Args:
            audio_path: Path to the audio file.
            locale: Locale identifier, e.g. "en-US".

        Returns:
            A lazy, time-ordered iterator of fragments. The stream ends once
            the engine has finalized the whole file.

        Raises:
            AnalysisError: If recognition fails. May be raised while iterating.
        """
        pass

    @abstractmethod
    def supported_locales(self) -> Dict[str, str]:
        """Locale identifiers the engine can transcribe, mapped to display names, sorted by display name."""
        pass

    def installed_locales(self) -> Dict[str, str]:
        """The subset of supported_locales() usable without a download."""
        return {loc: name for loc, name in self.supported_locales().items() if self.is_installed(loc)}

    def default_locale(self, preferred: Optional[str] = None) -> Optional[str]:
        """
        Picks a locale to transcribe with when the user has not chosen one.

        The preferred locale wins if supported. Otherwise an English locale is
        used (installed ones first), then the first installed locale, then the
        first supported one.

        Returns:
            A locale identifier, or None if the engine supports nothing.
        """
        if preferred and self.is_supported(preferred):
            return preferred
        installed = self.installed_locales()
        for candidates in (installed, self.supported_locales()):
            english = [loc for loc in candidates if language_code(loc) == "en"]
            if english:
                return english[0]
        if installed:
            return next(iter(installed))
        return next(iter(self.supported_locales()), None)

    def ensure_model(self, locale: str) -> None:
        """
        Makes sure a model for the locale is ready, downloading it if needed.

        Raises:
            LocaleUnsupportedError: If the locale is not supported.
            ModelProvisioningError: If the model download fails.
        """
        if not self.is_supported(locale):
            raise LocaleUnsupportedError(f"Language '{locale}' is not supported by the recognition engine")
        if self.is_installed(locale):
            logger.debug(f"Model for locale '{locale}' already installed.")
            return
        logger.info(f"Model for locale '{locale}' not installed. Downloading...")
        self.install(locale)


def default_model_dir() -> str:
    """Whisper's own checkpoint cache directory."""
    cache_root = os.getenv("XDG_CACHE_HOME", os.path.join(os.path.expanduser("~"), ".cache"))
    return os.path.join(cache_root, "whisper")


def _expose_ffmpeg(ffmpeg_path: str) -> None:
    """Whisper shells out to a bare "ffmpeg", so the override's directory goes first on PATH."""
    ffmpeg_dir = os.path.dirname(os.path.abspath(ffmpeg_path))
    entries = os.environ.get("PATH", "").split(os.pathsep)
    if entries and entries[0] == ffmpeg_dir:
        return
    logger.info(f"Prepending {ffmpeg_dir} to PATH for this process so Whisper uses {ffmpeg_path}")
    os.environ["PATH"] = os.pathsep.join([ffmpeg_dir] + [e for e in entries if e and e != ffmpeg_dir])


class WhisperEngine(RecognitionEngine):
    """Implements recognition using OpenAI's Whisper model."""

    def __init__(
        self,
        model_name: str = "base",
        device: str = "cuda",
        fp16: bool = True,
        word_timestamps: bool = True,
        model_dir: Optional[str] = None,
        ffmpeg_path: Optional[str] = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS
    ):
        """
        Initializes the WhisperEngine. The model itself is loaded lazily.

        Args:
            model_name: Whisper checkpoint name (e.g. "base", "small.en") or a path to a .pt file.
            device: The device to run the model on ("cuda" or "cpu").
            fp16: Whether to use float16 precision (only honoured on cuda).
            word_timestamps: Emit one fragment per word instead of one per segment.
            model_dir: Checkpoint download root. Defaults to Whisper's cache.
            ffmpeg_path: ffmpeg command Whisper should find; defaults to PATH lookup.
            window_seconds: Length of the audio windows transcribed one after
                            another. Fragments of a window are emitted as soon
                            as it is done.

        Raises:
            ValueError: If the specified device or window length is invalid.
            EngineUnavailableError: If ffmpeg, which Whisper decodes audio with, is missing.
        """
        self.model_name = model_name
        self.device = device
        self.word_timestamps = word_timestamps
        self.model_dir = model_dir or default_model_dir()
        self._models: Dict[str, "whisper.Whisper"] = {}
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        self.window_seconds = float(window_seconds)

        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA device requested but not available. Falling back to CPU.")
            self.device = "cpu"
        elif self.device not in ["cuda", "cpu"]:
             raise ValueError(f"Invalid device specified: {self.device}. Choose 'cuda' or 'cpu'.")
        self.fp16 = fp16 and self.device == "cuda" # FP16 only works on CUDA

        ffmpeg_cmd = ffmpeg_path or "ffmpeg"
        resolved_ffmpeg = shutil.which(ffmpeg_cmd)
        if resolved_ffmpeg is None:
            raise EngineUnavailableError(
                f"ffmpeg executable '{ffmpeg_cmd}' not found. Whisper requires ffmpeg to decode audio."
            )
        if ffmpeg_path:
            _expose_ffmpeg(resolved_ffmpeg)

        logger.info(f"Initializing WhisperEngine with model '{self.model_name}' on device '{self.device}' (FP16: {self.fp16})")

    @property
    def _checkpoint_path(self) -> str:
        if os.path.isfile(self.model_name):
            return self.model_name
        return os.path.join(self.model_dir, f"{self.model_name}.pt")

    def is_supported(self, locale: str) -> bool:
        lang = language_code(locale)
        if self.model_name.endswith(".en"):
            return lang == "en"
        return lang in whisper.tokenizer.LANGUAGES

    def supported_locales(self) -> Dict[str, str]:
        languages = whisper.tokenizer.LANGUAGES
        codes = ["en"] if self.model_name.endswith(".en") else list(languages)
        names = {code: languages[code].title() for code in codes}
        return dict(sorted(names.items(), key=lambda item: item[1]))

    def is_installed(self, locale: str) -> bool:
        # One multilingual checkpoint serves every supported locale.
        return os.path.isfile(self._checkpoint_path)

    def install(self, locale: str) -> None:
        self._load_model()

    def _load_model(self) -> "whisper.Whisper":
        model = self._models.get(self.model_name)
        if model is not None:
            return model
        try:
            logger.info(f"Loading Whisper model '{self.model_name}' (download root: {self.model_dir})")
            model = whisper.load_model(self.model_name, device=self.device, download_root=self.model_dir)
            logger.info(f"Whisper model '{self.model_name}' loaded successfully.")
        except Exception as e:
            logger.error(f"Failed to load Whisper model '{self.model_name}': {e}", exc_info=True)
            raise ModelProvisioningError(f"Failed to download language model '{self.model_name}': {e}") from e
        self._models[self.model_name] = model
        return model

    def analyze(self, audio_path: str, locale: str) -> Iterator[TimedFragment]:
        logger.info(f"Starting analysis for: {audio_path} (locale: {locale})")
        if not os.path.exists(audio_path):
             raise InputNotFoundError(f"File not found at path: {audio_path}")
        model = self._load_model()

        try:
            audio = whisper.load_audio(audio_path)
        except Exception as e:
            logger.error(f"Failed to decode audio {audio_path}: {e}", exc_info=True)
            raise AnalysisError(f"Cannot decode audio file {audio_path}: {e}") from e

        return self._stream(model, audio, audio_path, language_code(locale))

    def _stream(self, model, audio, audio_path: str, language: str) -> Iterator[TimedFragment]:
        """
        Transcribes the decoded audio one window at a time, yielding each
        window's fragments before the next window is decoded.

        The tail of the previous window's text is passed as the initial prompt
        so the model keeps its context across window boundaries.
        """
        window = int(self.window_seconds * whisper.audio.SAMPLE_RATE)
        total_windows = max(1, -(-len(audio) // window))
        prompt = None
        last_end = 0.0
        segment_count = 0

        for index, first_sample in enumerate(range(0, len(audio), window)):
            offset = first_sample / whisper.audio.SAMPLE_RATE
            logger.debug(f"Transcribing window {index + 1}/{total_windows} of {audio_path} (offset {offset:.1f}s)")
            try:
                # verbose=None keeps Whisper silent; progress is reported from the fragment stream.
                result = model.transcribe(
                    audio[first_sample:first_sample + window],
                    language=language,
                    fp16=self.fp16,
                    word_timestamps=self.word_timestamps,
                    initial_prompt=prompt,
                    verbose=None
                )
            except Exception as e:
                logger.error(f"Error during Whisper analysis for {audio_path} at {offset:.1f}s: {e}", exc_info=True)
                raise AnalysisError(f"Speech analysis failed for {audio_path} at {offset:.1f}s: {e}") from e

            segments = result.get('segments', [])
            segment_count += len(segments)
            for fragment in self._fragments(segments, offset):
                # Drop anything the window boundary made the model repeat.
                if fragment.end <= last_end and fragment.start < last_end:
                    continue
                last_end = max(last_end, fragment.end)
                yield fragment

            text = (result.get('text') or '').strip()
            if text:
                prompt = text[-PROMPT_TAIL_CHARS:]

        logger.info(f"Analysis completed. {segment_count} segments recognized.")

    def _fragments(self, segments, offset: float = 0.0) -> Iterator[TimedFragment]:
        for seg_data in segments:
            words = seg_data.get('words') if self.word_timestamps else None
            if words:
                for word in words:
                    yield TimedFragment(
                        text=word['word'],
                        start=offset + float(word['start']),
                        end=offset + float(word['end'])
                    )
            elif 'start' in seg_data and 'end' in seg_data and 'text' in seg_data:
                yield TimedFragment(
                    text=seg_data['text'],
                    start=offset + float(seg_data['start']),
                    end=offset + float(seg_data['end'])
                )
            else:
                logger.warning(f"Skipping incomplete segment data: {seg_data}")

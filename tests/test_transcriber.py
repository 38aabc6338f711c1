"""Tests for the Whisper engine adapter and the ffprobe duration probe.

Whisper, torch and ffprobe are patched out: these tests check how their
results and failures are translated, not the libraries themselves.
"""

import os
from unittest.mock import MagicMock

import ffmpeg
import numpy as np
import pytest

from audioscribe import audio_probe as audio_probe_module
from audioscribe import transcriber as transcriber_module
from audioscribe.audio_probe import AudioProbe
from audioscribe.exceptions import (
    AnalysisError,
    EngineUnavailableError,
    InputNotFoundError,
    LocaleUnsupportedError,
    ModelProvisioningError,
)
from audioscribe.models import TimedFragment
from audioscribe.transcript_generator import TranscriptGenerator
from audioscribe.transcriber import WhisperEngine

from conftest import FakeProbe

SAMPLE_RATE = 16000


WHISPER_RESULT = {
    "language": "en",
    "segments": [
        {
            "start": 0.0,
            "end": 1.0,
            "text": " Hello world.",
            "words": [
                {"word": " Hello", "start": 0.0, "end": 0.4},
                {"word": " world.", "start": 0.5, "end": 1.0},
            ],
        },
        {"start": 1.2, "end": 2.0, "text": " Second line"},
        {"text": "no timing"},
    ],
}


@pytest.fixture
def whisper_env(monkeypatch):
    """Pretend ffmpeg is installed, CUDA is absent, model loading succeeds and audio is 20s long."""
    monkeypatch.setattr(transcriber_module.shutil, "which", lambda cmd: cmd if os.path.isabs(cmd) else "/usr/bin/" + cmd)
    monkeypatch.setattr(transcriber_module.torch.cuda, "is_available", lambda: False)
    model = MagicMock()
    model.transcribe.return_value = WHISPER_RESULT
    load_model = MagicMock(return_value=model)
    monkeypatch.setattr(transcriber_module.whisper, "load_model", load_model)
    monkeypatch.setattr(
        transcriber_module.whisper, "load_audio", lambda path: np.zeros(SAMPLE_RATE * 20, dtype=np.float32)
    )
    return load_model, model


class TestWhisperEngineSetup:
    def test_falls_back_to_cpu(self, whisper_env, tmp_path):
        engine = WhisperEngine(device="cuda", fp16=True, model_dir=str(tmp_path))
        assert engine.device == "cpu"
        assert engine.fp16 is False

    def test_invalid_device(self, whisper_env, tmp_path):
        with pytest.raises(ValueError):
            WhisperEngine(device="tpu", model_dir=str(tmp_path))

    def test_missing_ffmpeg_is_fatal(self, monkeypatch, tmp_path):
        monkeypatch.setattr(transcriber_module.shutil, "which", lambda cmd: None)
        monkeypatch.setattr(transcriber_module.torch.cuda, "is_available", lambda: False)
        with pytest.raises(EngineUnavailableError, match="ffmpeg"):
            WhisperEngine(device="cpu", model_dir=str(tmp_path))

    def test_ffmpeg_override_goes_first_on_path_once(self, whisper_env, tmp_path, monkeypatch):
        ffmpeg_dir = tmp_path / "ffmpeg-bin"
        monkeypatch.setenv("PATH", os.pathsep.join(["/usr/bin", "/bin"]))
        ffmpeg_cmd = str(ffmpeg_dir / "ffmpeg")
        WhisperEngine(device="cpu", model_dir=str(tmp_path), ffmpeg_path=ffmpeg_cmd)
        WhisperEngine(device="cpu", model_dir=str(tmp_path), ffmpeg_path=ffmpeg_cmd)
        assert os.environ["PATH"].split(os.pathsep) == [str(ffmpeg_dir), "/usr/bin", "/bin"]


class TestWhisperEngineProvisioning:
    def test_locale_listing_sorted_by_name(self, whisper_env, tmp_path):
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        locales = engine.supported_locales()
        assert locales["de"] == "German"
        assert locales["en"] == "English"
        names = list(locales.values())
        assert names == sorted(names)

    def test_english_only_model_lists_english(self, whisper_env, tmp_path):
        engine = WhisperEngine(model_name="tiny.en", device="cpu", model_dir=str(tmp_path))
        assert engine.supported_locales() == {"en": "English"}

    def test_installed_locales_follow_checkpoint(self, whisper_env, tmp_path):
        engine = WhisperEngine(model_name="small", device="cpu", model_dir=str(tmp_path))
        assert engine.installed_locales() == {}
        assert engine.default_locale() == "en"
        (tmp_path / "small.pt").write_bytes(b"weights")
        assert engine.installed_locales() == engine.supported_locales()

    def test_default_locale_prefers_requested(self, whisper_env, tmp_path):
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        assert engine.default_locale("fr-FR") == "fr-FR"
        assert engine.default_locale("tlh-KL") == "en"

    def test_supported_locales(self, whisper_env, tmp_path):
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        assert engine.is_supported("en-US")
        assert engine.is_supported("de_DE")
        assert not engine.is_supported("tlh-KL")

    def test_english_only_model(self, whisper_env, tmp_path):
        engine = WhisperEngine(model_name="base.en", device="cpu", model_dir=str(tmp_path))
        assert engine.is_supported("en-GB")
        assert not engine.is_supported("fr-FR")

    def test_installed_checks_checkpoint_file(self, whisper_env, tmp_path):
        engine = WhisperEngine(model_name="small", device="cpu", model_dir=str(tmp_path))
        assert not engine.is_installed("en-US")
        (tmp_path / "small.pt").write_bytes(b"weights")
        assert engine.is_installed("en-US")

    def test_ensure_model_downloads_once(self, whisper_env, tmp_path):
        load_model, _ = whisper_env
        engine = WhisperEngine(model_name="small", device="cpu", model_dir=str(tmp_path))
        engine.ensure_model("en-US")
        engine.install("en-US")
        load_model.assert_called_once_with("small", device="cpu", download_root=str(tmp_path))

    def test_ensure_model_unsupported(self, whisper_env, tmp_path):
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        with pytest.raises(LocaleUnsupportedError):
            engine.ensure_model("tlh-KL")

    def test_download_failure(self, whisper_env, tmp_path):
        load_model, _ = whisper_env
        load_model.side_effect = RuntimeError("SHA256 checksum does not match")
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        with pytest.raises(ModelProvisioningError, match="checksum"):
            engine.install("en-US")


class TestWhisperEngineAnalysis:
    def test_word_level_fragments(self, whisper_env, audio_file, tmp_path):
        _, model = whisper_env
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        fragments = list(engine.analyze(str(audio_file), "en-US"))
        assert fragments == [
            TimedFragment(text=" Hello", start=0.0, end=0.4),
            TimedFragment(text=" world.", start=0.5, end=1.0),
            TimedFragment(text=" Second line", start=1.2, end=2.0),
        ]
        kwargs = model.transcribe.call_args.kwargs
        assert kwargs["language"] == "en"
        assert kwargs["word_timestamps"] is True
        assert kwargs["fp16"] is False

    def test_segment_level_fragments(self, whisper_env, audio_file, tmp_path):
        engine = WhisperEngine(device="cpu", word_timestamps=False, model_dir=str(tmp_path))
        texts = [f.text for f in engine.analyze(str(audio_file), "en-US")]
        assert texts == [" Hello world.", " Second line"]

    def test_missing_audio(self, whisper_env, tmp_path):
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        with pytest.raises(InputNotFoundError):
            engine.analyze(str(tmp_path / "nope.wav"), "en-US")

    def test_transcribe_failure(self, whisper_env, audio_file, tmp_path):
        _, model = whisper_env
        model.transcribe.side_effect = RuntimeError("CUDA out of memory")
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        fragments = engine.analyze(str(audio_file), "en-US")
        with pytest.raises(AnalysisError, match="CUDA out of memory"):
            list(fragments)

    def test_undecodable_audio(self, whisper_env, audio_file, tmp_path, monkeypatch):
        def fail(path):
            raise RuntimeError("Failed to load audio: Invalid data found")

        monkeypatch.setattr(transcriber_module.whisper, "load_audio", fail)
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        with pytest.raises(AnalysisError, match="Failed to load audio"):
            engine.analyze(str(audio_file), "en-US")

    def test_repeated_words_are_dropped(self, whisper_env, audio_file, tmp_path):
        _, model = whisper_env
        model.transcribe.return_value = {
            "text": " Hi there there",
            "segments": [
                {"words": [{"word": " Hi", "start": 0.0, "end": 0.5}, {"word": " there", "start": 0.6, "end": 1.0}]},
                {"words": [{"word": " there", "start": 0.6, "end": 1.0}]},
            ],
        }
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path))
        texts = [f.text for f in engine.analyze(str(audio_file), "en-US")]
        assert texts == [" Hi", " there"]

    def test_invalid_window(self, whisper_env, tmp_path):
        with pytest.raises(ValueError, match="window_seconds"):
            WhisperEngine(device="cpu", model_dir=str(tmp_path), window_seconds=0)


def _window_result(text, start, end):
    return {"text": text, "segments": [{"words": [{"word": text, "start": start, "end": end}]}]}


class TestWhisperEngineStreaming:
    def test_fragments_are_offset_per_window(self, whisper_env, audio_file, tmp_path, monkeypatch):
        _, model = whisper_env
        monkeypatch.setattr(
            transcriber_module.whisper, "load_audio", lambda path: np.zeros(SAMPLE_RATE * 65, dtype=np.float32)
        )
        model.transcribe.side_effect = [
            _window_result(" One.", 1.0, 2.0),
            _window_result(" Two.", 0.5, 1.5),
            _window_result(" Three.", 1.0, 2.0),
        ]
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path), window_seconds=30)
        fragments = list(engine.analyze(str(audio_file), "en-US"))
        assert [(f.start, f.end) for f in fragments] == [(1.0, 2.0), (30.5, 31.5), (61.0, 62.0)]

        calls = model.transcribe.call_args_list
        assert [len(call.args[0]) for call in calls] == [SAMPLE_RATE * 30, SAMPLE_RATE * 30, SAMPLE_RATE * 5]
        assert [call.kwargs["initial_prompt"] for call in calls] == [None, "One.", "Two."]

    def test_progress_is_reported_before_analysis_finishes(self, whisper_env, audio_file, tmp_path, monkeypatch):
        _, model = whisper_env
        events = []
        monkeypatch.setattr(
            transcriber_module.whisper, "load_audio", lambda path: np.zeros(SAMPLE_RATE * 60, dtype=np.float32)
        )
        results = iter([_window_result(" First.", 0.0, 29.0), _window_result(" Second.", 0.0, 30.0)])

        def transcribe(audio, **kwargs):
            events.append("window")
            return next(results)

        model.transcribe.side_effect = transcribe
        engine = WhisperEngine(device="cpu", model_dir=str(tmp_path), window_seconds=30)
        generator = TranscriptGenerator(engine=engine, audio_probe=FakeProbe(60.0))
        generator.generate(
            str(audio_file), str(tmp_path / "out.txt"), "en-US",
            on_progress=lambda ratio: events.append(round(ratio, 2))
        )
        assert events[:3] == ["window", 0.48, "window"]
        assert events[-1] == 1.0


class TestAudioProbe:
    def test_format_duration(self, monkeypatch, audio_file):
        meta = {"format": {"duration": "12.5"}, "streams": [{"codec_type": "audio", "duration": "12.4"}]}
        monkeypatch.setattr(audio_probe_module.ffmpeg, "probe", lambda path, cmd: meta)
        assert AudioProbe().probe_duration(str(audio_file)) == 12.5

    def test_stream_duration_fallback(self, monkeypatch, audio_file):
        meta = {"format": {}, "streams": [{"codec_type": "video"}, {"codec_type": "audio", "duration": "3.0"}]}
        monkeypatch.setattr(audio_probe_module.ffmpeg, "probe", lambda path, cmd: meta)
        assert AudioProbe().probe_duration(str(audio_file)) == 3.0

    def test_no_audio_stream(self, monkeypatch, audio_file):
        meta = {"format": {"duration": "3.0"}, "streams": [{"codec_type": "video"}]}
        monkeypatch.setattr(audio_probe_module.ffmpeg, "probe", lambda path, cmd: meta)
        with pytest.raises(AnalysisError, match="No audio stream"):
            AudioProbe().probe_duration(str(audio_file))

    def test_ffprobe_error(self, monkeypatch, audio_file):
        def fail(path, cmd):
            raise ffmpeg.Error("ffprobe", b"", b"Invalid data found when processing input")

        monkeypatch.setattr(audio_probe_module.ffmpeg, "probe", fail)
        with pytest.raises(AnalysisError, match="Invalid data found"):
            AudioProbe().probe_duration(str(audio_file))

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputNotFoundError):
            AudioProbe().probe_duration(str(tmp_path / "nope.wav"))

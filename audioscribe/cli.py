"""Command-Line Interface handler for transcribing a single audio file."""

import argparse
import json
import logging
import os
import sys
from typing import Callable, List, Optional

from .aggregator import SegmentAggregator
from .audio_probe import AudioProbe
from .config_loader import ConfigLoader
from .exceptions import AudioScribeError, ConfigurationError, EngineUnavailableError
from .log_setup import setup_logging
from .models import TimestampStyle, TranscriptFormat, TranscriptionResult
from .progress import ConsoleProgressBar
from .transcriber import RecognitionEngine, WhisperEngine
from .transcript_generator import TranscriptGenerator
from .utils import system_locale

logger = logging.getLogger(__name__) # Get logger for this module

DEFAULT_CONFIG_PATH = "config.yaml"
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_ENGINE_UNAVAILABLE = 2

EngineFactory = Callable[[dict], RecognitionEngine]

def build_engine(config: dict) -> RecognitionEngine:
    """Creates the Whisper engine described by the configuration."""
    return WhisperEngine(
        model_name=config['whisper_model'],
        device=config['device'],
        fp16=config['whisper_fp16'],
        word_timestamps=config['word_timestamps'],
        model_dir=config.get('model_dir'),
        ffmpeg_path=config.get('ffmpeg_path'),
        window_seconds=config['window_seconds']
    )

def build_generator(
    config: dict,
    engine: RecognitionEngine,
    audio_probe: Optional[AudioProbe] = None
) -> TranscriptGenerator:
    """Wires an engine into a TranscriptGenerator using the configured chunking and output rules."""
    return TranscriptGenerator(
        engine=engine,
        output_format=TranscriptFormat(config['output_format']),
        aggregator=SegmentAggregator(
            max_chars_per_chunk=config['max_chars_per_chunk'],
            max_chunk_duration=config['max_chunk_duration']
        ),
        audio_probe=audio_probe or AudioProbe(ffprobe_path=config.get('ffprobe_path')),
        timestamp_style=TimestampStyle(config['timestamp_style'])
    )

def load_cli_config(config_path: Optional[str]) -> dict:
    """
    Loads the config named on the command line, or config.yaml when present.

    Raises:
        FileNotFoundError: If an explicitly named file is missing.
        ConfigurationError: If the file is invalid.
    """
    if config_path is None and os.path.isfile(DEFAULT_CONFIG_PATH):
        config_path = DEFAULT_CONFIG_PATH
    return ConfigLoader().load_config(config_path)

def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by the single-file and batch commands."""
    parser.add_argument(
        "--format",
        default=None, # Default taken from config
        type=str.lower,
        choices=[f.value for f in TranscriptFormat],
        help="Output format (config default: txt)."
    )
    parser.add_argument(
        "--locale",
        default=None, # Default taken from config, then the system locale
        help="Locale of the spoken language, e.g. en-US (default: system locale)."
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help=f"Path to the configuration YAML file (default: {DEFAULT_CONFIG_PATH} if present)."
    )
    parser.add_argument(
        "--timestamps",
        default=None,
        choices=[s.value for s in TimestampStyle],
        help="Timestamp prefix for plain-text output."
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Override the Whisper model specified in config."
    )
    parser.add_argument(
        "--device",
        default=None, # Default taken from config
        choices=["cuda", "cpu"],
        help="Override the processing device (cuda or cpu) specified in config."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level for console and file output."
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Do not draw progress bars."
    )

def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Copies CLI overrides into the config and re-validates it."""
    overrides = {
        'output_format': args.format,
        'locale': args.locale,
        'timestamp_style': args.timestamps,
        'whisper_model': args.model,
        'device': args.device,
    }
    for key, value in overrides.items():
        if value is not None:
            logger.info(f"Overriding {key} from config with CLI argument: {value}")
            config[key] = value
    if not config.get('locale'):
        config['locale'] = system_locale()
    return ConfigLoader.validate(config)


class CLIHandler:
    """Parses arguments and transcribes one file, printing a JSON result."""

    def __init__(
        self,
        engine_factory: EngineFactory = build_engine,
        audio_probe: Optional[AudioProbe] = None,
        stdout=None
    ):
        self.parser = self._create_parser()
        self.engine_factory = engine_factory
        self.audio_probe = audio_probe
        self.stdout = stdout if stdout is not None else sys.stdout

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            prog="audioscribe",
            description="AudioScribe: Transcribe an audio file to plain text or SRT subtitles."
        )
        parser.add_argument(
            "--input-path",
            help="Path to the input audio file."
        )
        parser.add_argument(
            "--output-path",
            help="Path of the transcript to write."
        )
        parser.add_argument(
            "--list-locales",
            action="store_true",
            help="Print the locales the recognition engine supports as JSON and exit."
        )
        add_common_arguments(parser)
        return parser

    def _print_result(self, result: TranscriptionResult) -> None:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True), file=self.stdout)

    def _fail(self, message: str, exit_code: int = EXIT_FAILURE) -> int:
        self._print_result(TranscriptionResult(success=False, error=message))
        return exit_code

    def _list_locales(self, engine: RecognitionEngine, preferred: Optional[str]) -> int:
        installed = engine.installed_locales()
        listing = {
            'defaultLocale': engine.default_locale(preferred),
            'locales': [
                {'id': locale_id, 'name': name, 'installed': locale_id in installed}
                for locale_id, name in engine.supported_locales().items()
            ],
        }
        logger.info(f"{len(listing['locales'])} locales supported, {len(installed)} installed.")
        print(json.dumps(listing, indent=2, sort_keys=True), file=self.stdout)
        return EXIT_SUCCESS

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Parses arguments, sets up logging, loads config, and runs the transcription. Returns the exit code."""
        args = self.parser.parse_args(argv)
        if not args.list_locales and not (args.input_path and args.output_path):
            self.parser.error("--input-path and --output-path are required unless --list-locales is given")

        log_level = getattr(logging, args.log_level.upper(), logging.INFO)
        setup_logging(log_level=log_level, log_dir=None, stream=sys.stderr) # Console only until config is read

        try:
            config = apply_overrides(load_cli_config(args.config), args)
        except (ConfigurationError, FileNotFoundError) as e:
            logger.critical(f"Failed to load configuration: {e}")
            return self._fail(str(e))

        setup_logging(log_level=log_level, log_dir=config['log_dir'], log_file=config['log_file'], stream=sys.stderr)

        try:
            engine = self.engine_factory(config)
        except EngineUnavailableError as e:
            logger.critical(f"Recognition engine unavailable: {e}")
            return self._fail(str(e), EXIT_ENGINE_UNAVAILABLE)
        except ValueError as e:
            logger.critical(f"Could not initialize recognition engine: {e}")
            return self._fail(str(e))

        if args.list_locales:
            return self._list_locales(engine, config['locale'])

        generator = build_generator(config, engine, self.audio_probe)
        progress_bar = ConsoleProgressBar(desc=os.path.basename(args.input_path) + " ", disable=args.no_progress)
        try:
            result = generator.generate(
                args.input_path,
                args.output_path,
                config['locale'],
                on_progress=progress_bar.render
            )
            progress_bar.finish()
        except EngineUnavailableError as e:
            progress_bar.close()
            logger.critical(f"Recognition engine unavailable: {e}")
            return self._fail(str(e), EXIT_ENGINE_UNAVAILABLE)
        except AudioScribeError as e:
            progress_bar.close()
            logger.error(f"Transcription failed: {e}")
            return self._fail(str(e))
        except KeyboardInterrupt:
            progress_bar.close()
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            return self._fail("Interrupted by user")
        except Exception as e:
            progress_bar.close()
            logger.critical(f"An unexpected critical error occurred: {e}", exc_info=True)
            return self._fail(f"Unknown error: {e}")

        self._print_result(result)
        return EXIT_SUCCESS


def main() -> None:
    sys.exit(CLIHandler().run())

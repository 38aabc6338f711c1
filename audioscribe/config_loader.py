"""Handles loading configuration from YAML files."""

import yaml
import os
import logging
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError
from .models import TimestampStyle, TranscriptFormat

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'output_format': 'txt',
    'locale': None, # None means the system locale
    'timestamp_style': 'none',
    'max_chars_per_chunk': 80,
    'max_chunk_duration': 6.0,
    'whisper_model': 'base',
    'device': 'cuda',
    'whisper_fp16': True,
    'word_timestamps': True,
    'window_seconds': 30.0, # audio transcribed per step
    'model_dir': None, # None means Whisper's cache directory
    'ffmpeg_path': None,
    'ffprobe_path': None,
    'log_dir': 'logs',
    'log_file': 'audioscribe.log',
}

class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: Optional[str] = None) -> dict:
        """
        Loads configuration from the specified YAML file path, merged over
        DEFAULT_CONFIG. Without a path only the defaults are returned.

        Args:
            config_path: The path to the YAML configuration file, or None.

        Returns:
            A dictionary containing the validated configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML, holds
                              unknown keys or invalid values.
        """
        config = dict(DEFAULT_CONFIG)
        if config_path is None:
            logger.info("No configuration file given. Using built-in defaults.")
            return self.validate(config)

        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
             logger.error(f"Configuration path is not a file: {config_path}")
             raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except IOError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if loaded is None:
            loaded = {} # Empty file
        if not isinstance(loaded, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")

        unknown = sorted(set(loaded) - set(DEFAULT_CONFIG))
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys in {config_path}: {', '.join(unknown)}")

        config.update(loaded)
        logger.info(f"Configuration loaded successfully from {config_path}")
        return self.validate(config)

    @staticmethod
    def validate(config: dict) -> dict:
        """
        Checks value types and ranges, normalising enum-like values to lowercase.

        Raises:
            ConfigurationError: On the first invalid value.
        """
        try:
            config['output_format'] = TranscriptFormat(str(config['output_format']).lower()).value
            config['timestamp_style'] = TimestampStyle(str(config['timestamp_style']).lower()).value
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

        if config['device'] not in ('cuda', 'cpu'):
            raise ConfigurationError(f"Invalid device '{config['device']}'. Choose 'cuda' or 'cpu'.")

        max_chars = config['max_chars_per_chunk']
        if isinstance(max_chars, bool) or not isinstance(max_chars, int) or max_chars <= 0:
            raise ConfigurationError(f"max_chars_per_chunk must be a positive integer, got {max_chars!r}")

        max_duration = config['max_chunk_duration']
        if isinstance(max_duration, bool) or not isinstance(max_duration, (int, float)) or max_duration <= 0:
            raise ConfigurationError(f"max_chunk_duration must be a positive number, got {max_duration!r}")
        config['max_chunk_duration'] = float(max_duration)

        window = config['window_seconds']
        if isinstance(window, bool) or not isinstance(window, (int, float)) or window <= 0:
            raise ConfigurationError(f"window_seconds must be a positive number, got {window!r}")
        config['window_seconds'] = float(window)

        for key in ('whisper_fp16', 'word_timestamps'):
            if not isinstance(config[key], bool):
                raise ConfigurationError(f"{key} must be true or false, got {config[key]!r}")

        return config

"""Simple YAML configuration loader for Code Radio."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..net.api import DEFAULT_REST_URL, DEFAULT_SSE_URL

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, Any] = {
    "api": {
        "rest_url": DEFAULT_REST_URL,
        "sse_url": DEFAULT_SSE_URL,
    },
    "audio": {
        "volume": 9,
        "queue_frames": 64,   # ~1.7s of 44.1kHz MP3 frames
        "chunk_size": 4096,
    },
    "decoder": {
        "corruption_warning_threshold": 8,
        "corruption_window_frames": 100,
    },
    "network": {
        "immediate_retries": 3,
        "initial_delay": 1.0,
        "backoff_multiplier": 2.0,
        "max_delay": 30.0,
        "max_attempts": None,
        "connect_timeout": 10.0,
    },
    "display": {
        "refresh_interval": 1.0,
    },
    "logging": {
        "level": "INFO",
        "file_path": "~/.cache/code-radio/code-radio.log",
        "console_output": False,
    },
    "stations": [],
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class CodeRadioConfig:
    """Code Radio configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to a YAML config file. If None, only the built-in
                        defaults are used.
        """
        self.config_file = Path(config_path).expanduser() if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULTS)
            self._resolve_paths(self.config)
            return

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _deep_merge(DEFAULTS, loaded)
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Expand ~ and resolve the log path relative to the config file location."""
        log_path = config.get('logging', {}).get('file_path')
        if not log_path:
            return
        log_path = os.path.expanduser(log_path)
        if not os.path.isabs(log_path) and self.config_file is not None:
            log_path = str(self.config_file.parent / log_path)
        config['logging']['file_path'] = log_path

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'network.max_delay').

        Args:
            key_path: Dot-separated key path (e.g., 'audio.volume')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'audio.volume')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

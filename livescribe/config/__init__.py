"""Simple YAML configuration loader for LiveScribe."""

import copy
import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "block_size": 4096,
        "channels": 1,
        "device_index": None,
    },
    "session": {
        "pre_open_queue_size": 64,
    },
    "transcription": {
        "backend": "gemini_live",
        "model": "gemini-live-2.5-flash-preview",
        "language": "en-US",
    },
    "gemini": {
        "api_key_env": "GEMINI_API_KEY",
        "api_key": None,
    },
    "google_cloud": {
        "credentials_path": None,
    },
    "chat": {
        "model": "gemini-2.5-flash",
        "thinking_model": "gemini-2.5-pro",
        "thinking_budget": 32768,
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/livescribe.log",
        "console_output": True,
    },
}


@dataclass(frozen=True)
class ServiceCredentials:
    """Credentials handed to SDK client factories, one client per operation."""
    api_key: Optional[str] = None
    credentials_path: Optional[str] = None


class LiveScribeConfig:
    """LiveScribe configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used and relative paths resolve against the
                        current directory.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is not None and not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load YAML file (if any) on top of the defaults."""
        config = copy.deepcopy(DEFAULT_CONFIG)
        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            return config

        logger.info(f"Loading configuration from: {self.config_file}")
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

        if not loaded:
            raise ConfigurationError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ConfigurationError("Configuration file must contain a mapping")

        _merge(config, loaded)
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        creds_path = config['google_cloud'].get('credentials_path')
        if creds_path and not os.path.isabs(creds_path):
            config['google_cloud']['credentials_path'] = str(config_dir / creds_path)

        log_path = config['logging'].get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.sample_rate').

        Args:
            key_path: Dot-separated key path
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

        return default if value is None else value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'chat.model')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_api_key(self) -> str:
        """Get the Gemini API key from the config file or the environment."""
        api_key = self.get('gemini.api_key')
        if not api_key:
            env_name = self.get('gemini.api_key_env', 'GEMINI_API_KEY')
            api_key = os.environ.get(env_name)
        if not api_key:
            raise ConfigurationError(
                "Gemini API key not configured: set gemini.api_key or the "
                f"{self.get('gemini.api_key_env', 'GEMINI_API_KEY')} environment variable"
            )
        return api_key

    def get_google_credentials_path(self) -> str:
        """Get Google Cloud service account path for the Speech backend."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            raise ConfigurationError("Google credentials path not configured (google_cloud.credentials_path)")

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise ConfigurationError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_service_credentials(self) -> ServiceCredentials:
        """Build the credentials object for the configured transcription backend."""
        if self.get('transcription.backend') == 'google_speech':
            return ServiceCredentials(credentials_path=self.get_google_credentials_path())
        return ServiceCredentials(api_key=self.get_api_key())


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value

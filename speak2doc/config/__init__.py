"""Simple YAML configuration loader for speak2doc."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..models.recognition import BackendSelection
from ..models.settings import DEFAULT_ENDPOINTS, RecognitionSettings

logger = logging.getLogger(__name__)


class Speak2DocConfig:
    """speak2doc configuration loader."""

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (('google_cloud', 'credentials_path'), ('logging', 'file_path')):
            value = (config.get(section) or {}).get(key)
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'recognition.language').

        Args:
            key_path: Dot-separated key path (e.g., 'google_cloud.credentials_path')
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
        """Set configuration value using dot notation."""
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_secret(self, name: str) -> Optional[str]:
        """Read `credentials.<name>`, or the environment variable named by `credentials.<name>_env`."""
        value = self.get(f'credentials.{name}')
        if value:
            return value
        env_name = self.get(f'credentials.{name}_env')
        if env_name:
            value = os.environ.get(env_name)
            if not value:
                logger.warning(f"Environment variable {env_name} for credentials.{name} is not set")
            return value or None
        return None

    def get_google_credentials_path(self) -> Optional[str]:
        """Google credentials path, or None when not configured."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            return None
        return str(Path(creds_path).absolute())

    def get_backend(self) -> BackendSelection:
        return BackendSelection.from_name(self.get('recognition.backend', 'native'))

    def recognition_settings(self) -> RecognitionSettings:
        """Build the immutable settings consumed by the recognition core."""
        endpoints = dict(DEFAULT_ENDPOINTS)
        endpoints.update(self.get('providers.endpoints', {}) or {})

        defaults = RecognitionSettings()
        settings = RecognitionSettings(
            backend=self.get_backend(),
            language=self.get('recognition.language', defaults.language),
            sample_rate=int(self.get('recognition.sample_rate', defaults.sample_rate)),
            buffer_size=int(self.get('recognition.buffer_size', defaults.buffer_size)),
            stop_timeout=float(self.get('recognition.stop_timeout', defaults.stop_timeout)),
            request_timeout=float(self.get('recognition.request_timeout', defaults.request_timeout)),
            endpoints=endpoints,
            token_url=self.get('providers.realtime.token_url', defaults.token_url),
            realtime_url=self.get('providers.realtime.url', defaults.realtime_url),
            assemblyai_api_key=self.get_secret('assemblyai_api_key'),
            google_credentials_path=self.get_google_credentials_path(),
            word_boost=tuple(self.get('providers.realtime.word_boost', []) or []),
        )
        logger.debug(f"Recognition settings: backend={settings.backend.value}, "
                     f"language={settings.language}, sample_rate={settings.sample_rate}")
        return settings

    def get_chat_url(self) -> Optional[str]:
        return self.get('chat.url')

    def get_chat_prompt(self) -> Optional[str]:
        return self.get('chat.system_prompt')

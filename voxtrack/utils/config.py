"""
Configuration loader for the read-along system.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class Config:
    """Configuration manager for read-aloud sessions."""

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not self._config:
            self._load_config()

    def _get_project_root(self) -> Path:
        """Get the project root directory."""
        # Navigate up from voxtrack/utils to project root
        current = Path(__file__).resolve()
        return current.parent.parent.parent

    def _load_config(self) -> None:
        """Load configuration from YAML file, layered over the defaults."""
        config_path = self._get_project_root() / "config" / "settings.yaml"

        self._config = self._get_defaults()
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            self._merge(self._config, loaded)

    @staticmethod
    def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                Config._merge(base[key], value)
            else:
                base[key] = value

    def _get_defaults(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "voice": {
                "default": "en-US-JennyNeural",
                "rate": "+0%",
                "volume": "+0%",
                "lang": "en-US",
            },
            "filters": {
                "frontmatter": True,
                "code": True,
                "math": True,
                "editor_syntax": True,
                "links": True,
            },
            "chunking": {
                "max_length": 2500,
            },
            "recovery": {
                "lookback": 50,
                "max_retries": 3,
            },
            "sync": {
                "poll_interval": 1 / 60,
                "search_window": 100,
                "drop_protocol_artifacts": True,
            },
            "logging": {
                "debug": False,
            },
        }

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example:
            config.get("voice", "default") -> "en-US-JennyNeural"
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._get_project_root()

    @property
    def voice(self) -> str:
        """Get the default voice."""
        return self.get("voice", "default", default="en-US-JennyNeural")

    @property
    def voice_rate(self) -> str:
        """Get the speaking rate as an edge-tts rate string."""
        return self.get("voice", "rate", default="+0%")

    @property
    def voice_volume(self) -> str:
        """Get the volume as an edge-tts volume string."""
        return self.get("voice", "volume", default="+0%")

    @property
    def lang(self) -> str:
        """Get the language tag used for symbol verbalization."""
        return self.get("voice", "lang", default="en-US")

    @property
    def max_chunk_length(self) -> int:
        """Get the maximum characters per synthesis request."""
        return int(self.get("chunking", "max_length", default=2500))

    @property
    def recovery_lookback(self) -> int:
        """Get how far back recovery may look for a sentence boundary."""
        return int(self.get("recovery", "lookback", default=50))

    @property
    def max_retries(self) -> int:
        """Get the reconnect attempts allowed per interruption."""
        return int(self.get("recovery", "max_retries", default=3))

    @property
    def poll_interval(self) -> float:
        """Get the highlight poll interval in seconds."""
        return float(self.get("sync", "poll_interval", default=1 / 60))

    @property
    def search_window(self) -> int:
        """Get how far ahead a spoken word may be matched in the chunk text."""
        return int(self.get("sync", "search_window", default=100))

    @property
    def drop_protocol_artifacts(self) -> bool:
        """Check if vendor protocol artifacts should be dropped."""
        return bool(self.get("sync", "drop_protocol_artifacts", default=True))

    @property
    def debug(self) -> bool:
        """Check if debug logging is enabled."""
        return bool(self.get("logging", "debug", default=False))


# Singleton instance
config = Config()

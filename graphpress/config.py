"""
Configuration management for Graphpress.

Settings for the sync pipeline, the content store and the external renderer
are read from config.yaml, with built-in defaults for anything missing.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from .errors import ConfigurationError


_MISSING = object()


class ConfigManager:
    """
    Manages configuration loading and access for Graphpress.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Read config.yaml, falling back to the built-in defaults."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}

            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load configuration, using defaults: {e}")
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Settings used when config.yaml is missing or unreadable."""
        return {
            "database": {
                "filename": "graphpress.db"
            },
            "git": {
                "clone_timeout": 60.0,
                "ls_remote_timeout": 30.0,
                "max_output_bytes": 10 * 1024 * 1024,
                "temp_prefix": "graphpress-"
            },
            "renderer": {
                "binary": "export-logseq-notes",
                "search_paths": ["~/.cargo/bin", "~/.local/bin", "/usr/local/bin", "/usr/bin"],
                "timeout": 300.0,
                "max_output_bytes": 50 * 1024 * 1024,
                "output_dir": ".graphpress-output"
            },
            "sync": {
                "serialize_triggers": True
            },
            "traversal": {
                "max_depth": 64
            },
            "storage": {
                "blob_base_url": None,
                "bucket": "graphpress-assets",
                "timeout": 30.0
            },
            "webhook": {
                "secret": None
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "paths": {
                "log_file": "graphpress.log"
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "git.clone_timeout")
            default: Default value if key is not found

        Returns:
            The configuration value

        Examples:
            config.get("renderer.binary")  # Returns "export-logseq-notes"
            config.get("traversal.max_depth")  # Returns 64
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def require(self, key_path: str) -> Any:
        """
        Get a configuration value that must be present.

        Raises:
            ConfigurationError: If the value is missing or empty
        """
        value = self.get(key_path, _MISSING)
        if value is _MISSING or value is None or value == "":
            raise ConfigurationError(f"Missing required setting: {key_path}")
        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Return one top-level section as a dictionary.

        Args:
            section: Name of the configuration section

        Returns:
            The section, or an empty dictionary when it is absent
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """Re-read config.yaml, e.g. after it was edited."""
        self._load_config()

    # Typed accessors

    @property
    def database_filename(self) -> str:
        """Get database filename."""
        return self.get("database.filename", "graphpress.db")

    @property
    def clone_timeout(self) -> float:
        """Get git clone timeout in seconds."""
        return float(self.get("git.clone_timeout", 60.0))

    @property
    def ls_remote_timeout(self) -> float:
        """Get git ls-remote timeout in seconds."""
        return float(self.get("git.ls_remote_timeout", 30.0))

    @property
    def git_max_output_bytes(self) -> int:
        return int(self.get("git.max_output_bytes", 10 * 1024 * 1024))

    @property
    def renderer_binary(self) -> str:
        """Get the external renderer binary name or path."""
        return self.get("renderer.binary", "export-logseq-notes")

    @property
    def renderer_search_paths(self) -> List[str]:
        return self.get("renderer.search_paths", ["~/.cargo/bin", "~/.local/bin"])

    @property
    def renderer_timeout(self) -> float:
        return float(self.get("renderer.timeout", 300.0))

    @property
    def renderer_max_output_bytes(self) -> int:
        return int(self.get("renderer.max_output_bytes", 50 * 1024 * 1024))

    @property
    def serialize_triggers(self) -> bool:
        """Whether a sync trigger is rejected while one is already running."""
        return bool(self.get("sync.serialize_triggers", True))

    @property
    def max_traversal_depth(self) -> int:
        """Get the hard depth ceiling for tree traversal."""
        return int(self.get("traversal.max_depth", 64))

    @property
    def webhook_secret(self) -> Optional[str]:
        return self.get("webhook.secret")

    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "graphpress.log")


# Global configuration instance
config = ConfigManager()

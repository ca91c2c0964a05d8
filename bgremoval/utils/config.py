"""
Configuration management for the background removal node.
"""
import json
import os
from pathlib import Path
from typing import Dict, Any, Optional

from bgremoval.utils.constants import CONFIGS_DIR
from bgremoval.utils.failures import ConfigError

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    'BGR_LOG_LEVEL': 'logging.level',
    'BGR_MODEL_PATH': 'detection.face_model.path',
    'BGR_WINDOW_TITLE': 'display.window_title',
}


class Config:
    """Configuration manager that merges multiple domain-specific JSON files."""

    def __init__(self, configs_dir: Optional[str] = None, user_file: Optional[str] = None):
        """
        Load every JSON file in the configs directory, then the optional user
        file, then environment overrides.

        Args:
            configs_dir: Directory containing JSON configs (defaults to bgremoval/configs)
            user_file: Extra JSON file merged last; it must exist and parse
        """
        self.config: Dict[str, Any] = {}

        configs_dir = Path(configs_dir) if configs_dir else CONFIGS_DIR

        if configs_dir.exists() and configs_dir.is_dir():
            for config_file in sorted(configs_dir.glob("*.json")):
                self.load_from_file(str(config_file))

        if user_file:
            self.load_from_file(user_file, required=True)

        self._load_from_env()

    def _load_from_env(self):
        """Apply environment variable overrides."""
        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self.set(key, value)

    def load_from_file(self, path: str, required: bool = False):
        """
        Merge a JSON file into the configuration.

        Unreadable files are skipped with a message unless ``required`` is set,
        in which case ConfigError is raised.
        """
        try:
            with open(path, 'r') as f:
                user_config = json.load(f)
        except (OSError, ValueError) as e:
            if required:
                raise ConfigError(f"Failed to load config from {path}: {e}", critical=True) from e
            print(f"Failed to load config from {path}: {e}")
            return

        if not isinstance(user_config, dict):
            if required:
                raise ConfigError(f"Config file {path} must contain a JSON object", critical=True)
            print(f"Ignoring config file {path}: top level is not an object")
            return

        self._merge_config(user_config)

    def _merge_config(self, user_config: Dict[str, Any]):
        """Merge user config with defaults recursively."""
        def update(d, u):
            for k, v in u.items():
                if isinstance(v, dict):
                    d[k] = update(d.get(k, {}) if isinstance(d.get(k), dict) else {}, v)
                else:
                    d[k] = v
            return d

        update(self.config, user_config)

    def get_int(self, key: str, default: int = 0) -> int:
        """Get config value as integer."""
        val = self.get(key, default)
        try:
            return int(val)
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get config value as float."""
        val = self.get(key, default)
        try:
            return float(val)
        except (ValueError, TypeError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get config value as boolean."""
        val = self.get(key, default)
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ('true', '1', 'yes', 'on')
        return bool(val)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dotted key, e.g. ``camera.width``."""
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """Set a value by dotted key, creating intermediate sections."""
        keys = key.split('.')
        section = self.config
        for k in keys[:-1]:
            if not isinstance(section.get(k), dict):
                section[k] = {}
            section = section[k]
        section[keys[-1]] = value

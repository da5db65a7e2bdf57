"""
Configuration management for Lyra
"""

from pathlib import Path
from typing import Dict, Any, Optional
import copy
import json
import logging

logger = logging.getLogger(__name__)


class Config:
    """Configuration manager for Lyra"""

    DEFAULT_CONFIG_PATH = Path.home() / ".lyra" / "config.json"

    # Default configuration
    DEFAULTS = {
        "markdown": {
            "include_thinking": True,
            "include_tools": True,
            "include_artifacts": True,
            "include_citations": True,
            "include_timestamps": False,
            "export_obsidian_metadata": False,
            "obsidian_properties": [],
            "obsidian_tags": [],
            "exclude_deleted": True,
            "include_completed": False,
            "include_important": False,
            "numbering": "numeric",
            "header_level": 2,
            "sender_format": "default",
            "human_label": "",
            "assistant_label": "",
            "thinking_format": "codeblock"
        },
        "pdf": {
            "page_format": "a4",
            "include_thinking": True,
            "include_artifacts": True,
            "include_timestamps": False,
            "include_tools": True,
            "include_citations": True,
            "font_path": None
        },
        "overlays": {
            "db_path": "~/.lyra/overlays.db",
            "stars_enabled": True
        },
        "export": {
            "default_format": "markdown",
            "output_dir": "."
        }
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration

        Args:
            config_path: Optional custom config path
        """
        self.config_path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        self.config = self.load()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file, falling back to defaults"""
        if not self.config_path.exists():
            return copy.deepcopy(self.DEFAULTS)
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                user_config = json.load(f)
            # Merge with defaults (user config takes precedence)
            return self._deep_merge(copy.deepcopy(self.DEFAULTS), user_config)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in config file: {e}, using defaults")
        except (IOError, OSError) as e:
            logger.warning(f"Error reading config file: {e}, using defaults")
        return copy.deepcopy(self.DEFAULTS)

    def save(self, config: Optional[Dict[str, Any]] = None):
        """Save configuration to file"""
        config = config or self.config

        # Ensure directory exists
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Examples:
            config.get('markdown.numbering')
            config.get('pdf.page_format', 'a4')
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value by dot-notation key and persist it

        Examples:
            config.set('markdown.header_level', 1)
        """
        keys = key.split('.')
        target = self.config

        # Navigate to parent
        for k in keys[:-1]:
            if k not in target or not isinstance(target[k], dict):
                target[k] = {}
            target = target[k]

        target[keys[-1]] = value
        self.save()

    def section(self, name: str) -> Dict[str, Any]:
        """Copy of one top-level section"""
        return copy.deepcopy(self.config.get(name, {}))

    def overlay_db_path(self) -> Path:
        return Path(self.get('overlays.db_path', '~/.lyra/overlays.db')).expanduser()

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                base[key] = self._deep_merge(base[key], value)
            else:
                base[key] = value
        return base


# Global config instance
_config = None


def get_config() -> Config:
    """Get global config instance"""
    global _config
    if _config is None:
        _config = Config()
    return _config

import json
import logging
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir

from subfontloader.cache import default_cache_path

logger = logging.getLogger(__name__)

MODE_NORMAL = "normal"
MODE_NO_RESIDUE = "no_residue"
MODES = (MODE_NORMAL, MODE_NO_RESIDUE)


class AppConfig:
    """Unified interface for application configuration management."""

    APP_NAME = "SubFontLoader"
    APP_AUTHOR = "SubFontLoader"

    DEFAULT_SETTINGS = {
        "mode": MODE_NORMAL,
        "cache_path": None,
        "index_processes": 0,
    }

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(
            config_dir or user_config_dir(self.APP_NAME, self.APP_AUTHOR)
        )
        self.config_file = self.config_dir / "settings.json"
        self._settings = self._load_settings()

    def _load_settings(self) -> dict:
        """Load settings from file or create defaults."""
        settings = self.DEFAULT_SETTINGS.copy()
        if self.config_file.exists():
            try:
                with self.config_file.open("r", encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    settings.update(loaded)
                else:
                    logger.warning("Settings file is not an object, using defaults")
            except (OSError, ValueError):
                logger.warning("Failed to load settings, using defaults")
        return settings

    def _save_settings(self):
        """Persist settings to disk."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with self.config_file.open("w", encoding="utf-8") as f:
                json.dump(self._settings, f, indent=4)
        except OSError as e:
            logger.exception(f"Failed to save settings: {e}")

    def get(self, key: str, default=None):
        """Get a configuration value."""
        return self._settings.get(key, default)

    def set(self, key: str, value):
        """Set a configuration value and save."""
        self._settings[key] = value
        self._save_settings()

    def get_mode(self) -> str:
        mode = self._settings.get("mode", MODE_NORMAL)
        return mode if mode in MODES else MODE_NORMAL

    def set_mode(self, mode: str):
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        self.set("mode", mode)

    def use_cache(self) -> bool:
        """No-residue mode always re-parses fonts and leaves no cache behind."""
        return self.get_mode() == MODE_NORMAL

    def get_cache_path(self) -> Path:
        custom = self._settings.get("cache_path")
        return Path(custom) if custom else default_cache_path()

    def set_cache_path(self, path: Optional[Path]):
        self.set("cache_path", str(path) if path else None)

    def get_index_processes(self) -> int:
        try:
            return max(0, int(self._settings.get("index_processes") or 0))
        except (TypeError, ValueError):
            return 0

    def clear(self):
        """Clear all settings"""
        self._settings = self.DEFAULT_SETTINGS.copy()
        self._save_settings()

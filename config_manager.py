"""
Configuration Manager

Persists the configured registries and application settings as JSON in the
platform configuration directory.
"""

import json
import os
import platform
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

# Set up logging for config operations
logger = logging.getLogger(__name__)

APP_NAME = "wharf"
REGISTRIES_KEY = "registries"
REGISTRY_FIELDS = ("id", "url", "username", "password")

ENV_CONFIG_DIR = "WHARF_CONFIG_DIR"
ENV_REGISTRY_URL = "WHARF_REGISTRY_URL"
ENV_REGISTRY_USERNAME = "WHARF_REGISTRY_USERNAME"
ENV_REGISTRY_PASSWORD = "WHARF_REGISTRY_PASSWORD"

DEFAULT_APP_SETTINGS = {
    "request_timeout": 30,
    "verify_tls": True,
    "default_page_size": 0,  # 0 = single catalog request per registry
}


class ConfigManager:
    """Manages persistent configuration storage for registry settings"""

    def __init__(self, app_name: str = APP_NAME, config_dir: Optional[Path] = None):
        self.app_name = app_name
        if config_dir is None and os.environ.get(ENV_CONFIG_DIR):
            config_dir = Path(os.environ[ENV_CONFIG_DIR])
        self.config_dir = Path(config_dir) if config_dir else self._get_config_directory()
        self.config_file = self.config_dir / "config.json"
        self.backup_file = self.config_dir / "config.backup.json"

        # Ensure config directory exists
        self._ensure_config_directory()

    def _get_config_directory(self) -> Path:
        """Get platform-appropriate configuration directory"""
        system = platform.system().lower()

        if system == "darwin":
            # macOS: ~/Library/Application Support/app-name/
            config_base = Path.home() / "Library" / "Application Support"
        elif system == "windows":
            # Windows: %APPDATA%\app-name\
            config_base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        else:
            # Linux and fallback: ~/.config/app-name/
            config_base = Path.home() / ".config"

        return config_base / self.app_name

    def _ensure_config_directory(self) -> None:
        """Create configuration directory if it doesn't exist"""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            # Set restrictive permissions (user only)
            os.chmod(self.config_dir, 0o700)
            logger.info(f"Config directory ready: {self.config_dir}")
        except OSError as e:
            logger.error(f"Failed to create config directory {self.config_dir}: {e}")
            self.config_dir = Path(tempfile.gettempdir()) / self.app_name
            self.config_dir.mkdir(exist_ok=True)
            self.config_file = self.config_dir / "config.json"
            self.backup_file = self.config_dir / "config.backup.json"
            logger.warning(f"Using fallback config directory: {self.config_dir}")

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration structure"""
        return {
            "version": "1.0",
            "last_updated": datetime.now().isoformat(),
            "app_settings": dict(DEFAULT_APP_SETTINGS),
            REGISTRIES_KEY: [],
        }

    def _backup_existing_config(self) -> None:
        """Create backup of existing config before saving new one"""
        if self.config_file.exists():
            try:
                self.backup_file.write_text(self.config_file.read_text())
                os.chmod(self.backup_file, 0o600)
                logger.debug(f"Config backed up to {self.backup_file}")
            except OSError as e:
                logger.warning(f"Failed to backup config: {e}")

    def has_config(self) -> bool:
        return self.config_file.exists()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, return defaults if not found"""
        try:
            if not self.config_file.exists():
                logger.info("No config file found, using defaults")
                return self._get_default_config()

            with open(self.config_file, 'r') as f:
                config = json.load(f)

            # Validate basic structure
            if not isinstance(config, dict) or not isinstance(config.get(REGISTRIES_KEY), list):
                logger.warning("Config file format invalid, using defaults")
                return self._get_default_config()

            logger.debug(f"Loaded {len(config[REGISTRIES_KEY])} registry configurations from {self.config_file}")
            return config

        except json.JSONDecodeError as e:
            logger.error(f"Config file corrupted (JSON error): {e}")
            return self._get_default_config()
        except OSError as e:
            logger.error(f"Could not read config file {self.config_file}: {e}")
            return self._get_default_config()

    def save_config(self, config: Dict[str, Any]) -> bool:
        """Save configuration to file"""
        try:
            config["last_updated"] = datetime.now().isoformat()

            self._backup_existing_config()

            with open(self.config_file, 'w') as f:
                json.dump(config, f, indent=2, sort_keys=True)

            # Set restrictive permissions, credentials are stored in plaintext
            os.chmod(self.config_file, 0o600)

            registry_count = len(config.get(REGISTRIES_KEY, []))
            logger.info(f"Config saved to {self.config_file} ({registry_count} registries)")
            return True

        except OSError as e:
            logger.error(f"Failed to save config {self.config_file}: {e}")
            return False

    def load_registries(self) -> List[Dict[str, Any]]:
        """Stored registry configurations, in insertion order"""
        registries = []
        for entry in self.load_config()[REGISTRIES_KEY]:
            if isinstance(entry, dict) and entry.get("id") and entry.get("url"):
                registries.append({key: entry.get(key) for key in REGISTRY_FIELDS})
            else:
                logger.warning(f"Skipping invalid registry entry: {entry!r}")
        return registries

    def save_registries(self, registries: List[Dict[str, Any]]) -> bool:
        config = self.load_config()
        config[REGISTRIES_KEY] = [{key: entry.get(key) for key in REGISTRY_FIELDS} for entry in registries]
        return self.save_config(config)

    def get_app_settings(self) -> Dict[str, Any]:
        settings = dict(DEFAULT_APP_SETTINGS)
        stored = self.load_config().get("app_settings")
        if isinstance(stored, dict):
            settings.update({k: v for k, v in stored.items() if k in DEFAULT_APP_SETTINGS})
        return settings

    def get_config_info(self) -> Dict[str, Any]:
        """Get information about the configuration system"""
        config = self.load_config()

        return {
            "config_dir": str(self.config_dir),
            "config_file": str(self.config_file),
            "config_exists": self.config_file.exists(),
            "backup_exists": self.backup_file.exists(),
            "version": config.get("version", "unknown"),
            "last_updated": config.get("last_updated", "never"),
            "registry_count": len(config.get(REGISTRIES_KEY, [])),
        }


def get_default_registry_from_env(environ: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
    """Default registry supplied at startup through the environment"""
    environ = os.environ if environ is None else environ
    url = environ.get(ENV_REGISTRY_URL)
    if not url:
        return None
    return {
        "url": url.strip().rstrip("/"),
        "username": environ.get(ENV_REGISTRY_USERNAME) or None,
        "password": environ.get(ENV_REGISTRY_PASSWORD) or None,
    }

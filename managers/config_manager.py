"""Layered configuration for the hosting server"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger("Hosting_Server")

# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "project-hosting"
CONFIG_FILE = CONFIG_DIR / "config.json"

# key -> environment variable
ENV_VARS = {
    "store_base_url": "PROJECT_STORE_URL",
    "store_token": "PROJECT_STORE_TOKEN",
    "owner_id": "PROJECT_OWNER_ID",
    "data_dir": "PROJECT_DATA_DIR",
    "hosting_root": "PROJECT_HOSTING_ROOT",
    "hosting_domain": "PROJECT_HOSTING_DOMAIN",
    "hosting_scheme": "PROJECT_HOSTING_SCHEME",
    "tokens_file": "PROJECT_TOKENS_FILE",
    "render_url": "RENDER_COMFYUI_URL",
    "render_model": "RENDER_MODEL",
    "request_timeout": "PROJECT_REQUEST_TIMEOUT",
    "host": "PROJECT_SERVER_HOST",
    "port": "PROJECT_SERVER_PORT",
}

INT_KEYS = {"request_timeout", "port"}


class ConfigManager:
    """Resolves settings with precedence: runtime > config file > env > hardcoded"""

    def __init__(self, config_file: Path = CONFIG_FILE):
        self.config_file = Path(config_file)
        self._runtime: Dict[str, Any] = {}
        self._file_settings = self._load_file_settings()
        self._hardcoded: Dict[str, Any] = {
            "store_base_url": None,
            "store_token": None,
            "owner_id": "local",
            "data_dir": str(CONFIG_DIR / "data"),
            # Derived from data_dir when unset
            "hosting_root": None,
            "tokens_file": None,
            "hosting_domain": "sites.localhost",
            "hosting_scheme": "https",
            "render_url": "http://localhost:8188",
            "render_model": "v1-5-pruned-emaonly.ckpt",
            "request_timeout": 30,
            "host": "127.0.0.1",
            "port": 9000,
        }

    def _load_file_settings(self) -> Dict[str, Any]:
        """Load settings from config file"""
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
            settings = config.get("settings", {}) if isinstance(config, dict) else {}
            return {k: v for k, v in settings.items() if k in ENV_VARS}
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config file {self.config_file}: {e}")
            return {}

    def _get_env_settings(self) -> Dict[str, Any]:
        settings = {}
        for key, env_var in ENV_VARS.items():
            value = os.getenv(env_var)
            if value:
                settings[key] = value
        return settings

    def _coerce(self, key: str, value: Any) -> Any:
        if value is None or key not in INT_KEYS:
            return value
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-integer value for {key}: {value!r}")
            return self._hardcoded[key]

    def _resolve(self, key: str) -> Any:
        if key in self._runtime:
            return self._runtime[key]
        if key in self._file_settings:
            return self._file_settings[key]
        env_settings = self._get_env_settings()
        if key in env_settings:
            return env_settings[key]
        return self._hardcoded.get(key)

    def get(self, key: str) -> Any:
        """Get the effective value for a setting"""
        if key not in ENV_VARS:
            raise KeyError(f"Unknown setting: {key}")

        value = self._coerce(key, self._resolve(key))
        if value is None and key == "hosting_root":
            return str(Path(self.get("data_dir")) / "hosting")
        if value is None and key == "tokens_file":
            return str(Path(self.get("data_dir")) / "tokens.json")
        return value

    def get_all(self, redact: bool = True) -> Dict[str, Any]:
        """Get all effective settings"""
        settings = {key: self.get(key) for key in ENV_VARS}
        if redact and settings.get("store_token"):
            settings["store_token"] = "***"
        return settings

    def set_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Set runtime overrides. Returns validation errors if any."""
        unknown = [key for key in settings if key not in ENV_VARS]
        if unknown:
            return {"errors": [f"Unknown setting: {key}" for key in unknown]}

        errors = []
        for key in INT_KEYS:
            if key in settings and settings[key] is not None:
                try:
                    int(settings[key])
                except (TypeError, ValueError):
                    errors.append(f"Setting '{key}' must be an integer")
        if errors:
            return {"errors": errors}

        self._runtime.update(settings)
        logger.info(f"Updated runtime settings: {sorted(settings)}")
        return {"success": True, "updated": sorted(settings)}

    def persist_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Persist settings to config file"""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        config: Dict[str, Any] = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
            except (json.JSONDecodeError, IOError):
                config = {}

        config.setdefault("settings", {}).update(settings)

        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
            self._file_settings = self._load_file_settings()
            return {"success": True, "persisted": sorted(settings)}
        except IOError as e:
            return {"error": f"Failed to write config file: {e}"}

    def store_configured(self) -> bool:
        return bool(self.get("store_base_url"))

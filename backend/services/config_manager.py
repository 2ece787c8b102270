"""
Configuration Manager - Load relay and client settings
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# (section, key) <- environment variable
ENV_OVERRIDES: dict[tuple[str, str], str] = {
    ("upstream", "apiKey"): "CHAT_RELAY_UPSTREAM_API_KEY",
    ("upstream", "baseUrl"): "CHAT_RELAY_UPSTREAM_BASE_URL",
    ("identity", "baseUrl"): "CHAT_RELAY_IDENTITY_URL",
    ("identity", "serviceKey"): "CHAT_RELAY_IDENTITY_SERVICE_KEY",
    ("client", "relayUrl"): "CHAT_RELAY_URL",
    ("client", "publishableKey"): "CHAT_RELAY_PUBLISHABLE_KEY",
}

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful real estate assistant. Help users with questions about "
    "properties, locations, home services and real estate advice."
)


class ConfigManager:
    """Read settings from `config.json`, with environment overrides for secrets"""

    _instance = None

    def __init__(self):
        config_dir = os.environ.get("CHAT_RELAY_CONFIG_DIR") or os.path.join(os.path.expanduser("~"), ".chat_relay")
        self._config_file = Path(config_dir) / "config.json"
        self._config = self._load_config()

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        """Get singleton instance"""
        if cls._instance is None:
            cls._instance = ConfigManager()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Drop the singleton so the next call re-reads directory and environment"""
        cls._instance = None

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file, falling back to defaults"""
        config = self._default_config()
        if self._config_file.exists():
            try:
                with open(self._config_file) as f:
                    stored = json.load(f)
                for section, values in stored.items():
                    if isinstance(values, dict) and isinstance(config.get(section), dict):
                        config[section].update(values)
                    else:
                        config[section] = values
            except (json.JSONDecodeError, OSError) as e:
                logger.error("Error loading config: %s", e)
                config = self._default_config()
        return config

    def _default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "upstream": {
                "baseUrl": "https://api.openai.com/v1",
                "apiKey": "",
                "model": "gpt-4o-mini",
                "systemPrompt": DEFAULT_SYSTEM_PROMPT,
                "timeoutSeconds": 120,
            },
            "identity": {"baseUrl": "", "serviceKey": ""},
            "client": {
                "relayUrl": "http://localhost:8000/api/chat/stream",
                "publishableKey": "",
                "timeoutSeconds": 120,
            },
            "server": {"host": "0.0.0.0", "port": 8000},
        }

    def _apply_env(self, config: dict[str, Any]) -> dict[str, Any]:
        for (section, key), env_name in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                config.setdefault(section, {})[key] = value
        return config

    def get_config(self) -> dict[str, Any]:
        """Get current configuration with environment overrides applied"""
        # Reload config from file to ensure we have the latest
        self._config = self._load_config()
        return self._apply_env(copy.deepcopy(self._config))

from __future__ import annotations

import pytest

from services.config_manager import ENV_OVERRIDES, ConfigManager


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Point the config singleton at an empty per-test directory"""
    monkeypatch.setenv("CHAT_RELAY_CONFIG_DIR", str(tmp_path / "config"))
    for env_name in ENV_OVERRIDES.values():
        monkeypatch.delenv(env_name, raising=False)
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()

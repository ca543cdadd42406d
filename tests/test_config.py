"""Tests for configuration module."""

import importlib

import config


class TestConfigEnvVars:
    """Tests for environment variable configuration."""

    def teardown_method(self):
        importlib.reload(config)

    def test_default_values(self, monkeypatch):
        for name in ("SCAN_API_PORT", "SCAN_PLATFORM_LEVEL", "SCAN_PREGRANTED", "SCAN_DISCOVERY_DURATION"):
            monkeypatch.delenv(name, raising=False)
        importlib.reload(config)

        assert config.API_PORT == 8765
        assert config.PLATFORM_LEVEL == "modern"
        assert config.PREGRANTED_CAPABILITIES == frozenset()
        assert config.DISCOVERY_DURATION == 12.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SCAN_API_PORT", "9000")
        monkeypatch.setenv("SCAN_PLATFORM_LEVEL", "Legacy")
        monkeypatch.setenv("SCAN_PREGRANTED", "bluetooth, bluetooth_admin,,")
        importlib.reload(config)

        assert config.API_PORT == 9000
        assert config.PLATFORM_LEVEL == "legacy"
        assert config.PREGRANTED_CAPABILITIES == {"BLUETOOTH", "BLUETOOTH_ADMIN"}

    def test_invalid_env_values(self, monkeypatch):
        monkeypatch.setenv("SCAN_API_PORT", "invalid")
        monkeypatch.setenv("SCAN_DISCOVERY_DURATION", "soon")
        importlib.reload(config)

        assert config.API_PORT == 8765
        assert config.DISCOVERY_DURATION == 12.0

    def test_location_capabilities_are_profiled(self):
        profiled = {
            cap for profile in config.CAPABILITY_PROFILES.values() for cap in profile["capabilities"]
        }
        assert config.LOCATION_CAPABILITIES <= profiled

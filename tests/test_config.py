"""Tests for runtime configuration."""
from piprov.core import config as config_module
from piprov.core.config import ProvisionConfig, get_config, set_config


class TestProvisionConfig:
    """Test defaults and environment overrides."""

    def test_defaults(self):
        config = ProvisionConfig()
        assert config.apt_lock_timeout == 300
        assert config.apt_lock_poll_interval == 5.0
        assert config.service_start_wait == 2.0
        assert config.source_build_timeout == 3600

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PIPROV_APT_LOCK_TIMEOUT", "30")
        monkeypatch.setenv("PIPROV_SERVICE_START_WAIT", "0.5")
        monkeypatch.setenv("PIPROV_DOWNLOAD_TIMEOUT", "5")

        config = ProvisionConfig.from_env()

        assert config.apt_lock_timeout == 30
        assert config.service_start_wait == 0.5
        assert config.download_timeout == 5
        assert config.command_timeout == 600


class TestGlobalConfig:
    """Test the process-wide config instance."""

    def test_set_and_get(self):
        custom = ProvisionConfig(apt_lock_timeout=1)
        set_config(custom)
        assert get_config() is custom

    def test_reset_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PIPROV_COMMAND_TIMEOUT", "42")
        set_config(None)
        assert config_module._config is None
        assert get_config().command_timeout == 42

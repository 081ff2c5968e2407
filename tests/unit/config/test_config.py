"""Unit tests for configuration loading."""

from __future__ import annotations

import pytest

from trackerprobe.config.config import (
    ConfigManager,
    get_config,
    init_config,
    reset_config,
    set_config,
)
from trackerprobe.models import Config, LogLevel, ProbeConfig
from trackerprobe.utils.exceptions import ConfigurationError

pytestmark = [pytest.mark.unit, pytest.mark.config]


class TestConfigManager:
    """Test hierarchical configuration loading."""

    def test_defaults(self):
        """Test default values without file or environment."""
        config = ConfigManager().config

        assert config.probe.timeout == 5.0
        assert config.probe.max_concurrent_checks == 10
        assert config.probe.receive_buffer_size == 1024
        assert config.output.hosts_file == "udp_hosts.txt"
        assert config.output.shuffle is True

    def test_load_toml_file(self, tmp_path):
        """Test values from an explicit TOML file."""
        path = tmp_path / "custom.toml"
        path.write_text(
            "[probe]\ntimeout = 2.5\nmax_concurrent_checks = 4\n"
            "[output]\noutput_dir = 'results'\n",
            encoding="utf-8",
        )

        config = ConfigManager(path).config

        assert config.probe.timeout == 2.5
        assert config.probe.max_concurrent_checks == 4
        assert config.output.output_dir == "results"

    def test_finds_file_in_cwd(self, tmp_path):
        """Test discovery of trackerprobe.toml in the working directory."""
        (tmp_path / "trackerprobe.toml").write_text(
            "[probe]\ntimeout = 1.5\n", encoding="utf-8"
        )

        manager = ConfigManager()

        assert manager.config_file.resolve() == (tmp_path / "trackerprobe.toml").resolve()
        assert manager.config.probe.timeout == 1.5

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        """Test that environment variables win over the file."""
        path = tmp_path / "custom.toml"
        path.write_text("[probe]\ntimeout = 2.5\n", encoding="utf-8")
        monkeypatch.setenv("TRACKERPROBE_TIMEOUT", "0.5")
        monkeypatch.setenv("TRACKERPROBE_SHUFFLE", "false")
        monkeypatch.setenv("TRACKERPROBE_LOG_LEVEL", "debug")
        monkeypatch.setenv("TRACKERPROBE_PEER_ID_SEED", "1234")
        monkeypatch.setenv("TRACKERPROBE_LEFT", "250")

        config = ConfigManager(path).config

        assert config.probe.timeout == 0.5
        assert config.output.shuffle is False
        assert config.observability.log_level == LogLevel.DEBUG
        assert config.probe.peer_id_seed == "1234"
        assert config.probe.left == 250

    def test_missing_explicit_file(self, tmp_path):
        """Test that a missing explicit file is a configuration error."""
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigManager(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path):
        """Test that unparsable TOML is a configuration error."""
        path = tmp_path / "broken.toml"
        path.write_text("[probe\ntimeout = ", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager(path)

    def test_invalid_value(self, tmp_path):
        """Test that out-of-range values are rejected."""
        path = tmp_path / "bad.toml"
        path.write_text("[probe]\nmax_concurrent_checks = 0\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            ConfigManager(path)

    def test_apply_overrides_skips_none(self):
        """Test CLI-style overrides."""
        manager = ConfigManager()

        config = manager.apply_overrides(
            {"probe.timeout": 1.0, "output.output_dir": None}
        )

        assert config.probe.timeout == 1.0
        assert config.output.output_dir == "."

    def test_apply_overrides_validates(self):
        """Test that overrides are validated."""
        with pytest.raises(ConfigurationError):
            ConfigManager().apply_overrides({"probe.timeout": -1})

    def test_export_round_trips(self, tmp_path):
        """Test that exported TOML loads back to the same config."""
        manager = ConfigManager()
        manager.apply_overrides({"probe.timeout": 3.0})
        path = tmp_path / "exported.toml"
        path.write_text(manager.export(), encoding="utf-8")

        assert ConfigManager(path).config == manager.config


class TestGlobalConfig:
    """Test the module-level configuration accessors."""

    def test_get_config_is_cached(self):
        """Test that get_config reuses the manager."""
        assert get_config() is get_config()

    def test_init_and_set_config(self):
        """Test replacing the global configuration."""
        init_config()
        new_config = Config(probe=ProbeConfig(timeout=9.0))

        set_config(new_config)

        assert get_config().probe.timeout == 9.0

        reset_config()
        assert get_config().probe.timeout == 5.0

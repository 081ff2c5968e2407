"""Configuration management for trackerprobe.

Hierarchical loading: defaults -> TOML config file -> environment -> CLI.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from trackerprobe.models import Config
from trackerprobe.utils.exceptions import ConfigurationError
from trackerprobe.utils.logging_config import setup_logging

# Global configuration instance
_config_manager: ConfigManager | None = None

ENV_MAPPINGS: dict[str, str] = {
    # Probe
    "TRACKERPROBE_TIMEOUT": "probe.timeout",
    "TRACKERPROBE_MAX_CONCURRENT_CHECKS": "probe.max_concurrent_checks",
    "TRACKERPROBE_RECEIVE_BUFFER_SIZE": "probe.receive_buffer_size",
    "TRACKERPROBE_INFO_HASH_SEED": "probe.info_hash_seed",
    "TRACKERPROBE_PEER_ID_SEED": "probe.peer_id_seed",
    "TRACKERPROBE_LEFT": "probe.left",
    # Output
    "TRACKERPROBE_CANDIDATES_FILE": "output.candidates_file",
    "TRACKERPROBE_OUTPUT_DIR": "output.output_dir",
    "TRACKERPROBE_HOSTS_FILE": "output.hosts_file",
    "TRACKERPROBE_IPV4_FILE": "output.ipv4_file",
    "TRACKERPROBE_IPV6_FILE": "output.ipv6_file",
    "TRACKERPROBE_SHUFFLE": "output.shuffle",
    # Observability
    "TRACKERPROBE_LOG_LEVEL": "observability.log_level",
    "TRACKERPROBE_LOG_FILE": "observability.log_file",
    "TRACKERPROBE_STRUCTURED_LOGGING": "observability.structured_logging",
    "TRACKERPROBE_LOG_CORRELATION_ID": "observability.log_correlation_id",
}

# Values that must stay strings even when they look numeric or boolean
_STRING_PATHS = frozenset(
    {
        "probe.info_hash_seed",
        "probe.peer_id_seed",
        "output.candidates_file",
        "output.output_dir",
        "output.hosts_file",
        "output.ipv4_file",
        "output.ipv6_file",
        "observability.log_level",
        "observability.log_file",
    }
)


def _parse_env_value(raw: str, path: str) -> bool | int | float | str:
    if path in _STRING_PATHS:
        return raw.upper() if path == "observability.log_level" else raw

    low = raw.lower()
    if low in {"true", "1", "yes", "on"}:
        return True
    if low in {"false", "0", "no", "off"}:
        return False
    try:
        if "." in raw:
            return float(raw)
        return int(raw)
    except ValueError:
        return raw


def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = d
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for
                trackerprobe.toml

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self._setup_logging()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            path = Path(config_file)
            if not path.exists():
                msg = f"Config file not found: {path}"
                raise ConfigurationError(msg)
            return path

        search_paths = [
            Path.cwd() / "trackerprobe.toml",
            Path.home() / ".config" / "trackerprobe" / "trackerprobe.toml",
            Path.home() / ".trackerprobe.toml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

        env_config = self._get_env_config()
        config_data = self._merge_config(config_data, env_config)

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def apply_overrides(self, overrides: dict[str, Any]) -> Config:
        """Apply dotted-path overrides (e.g. from CLI options) and revalidate."""
        data = self.config.model_dump()
        for path, value in overrides.items():
            if value is None:
                continue
            _set_nested(data, path, value)

        try:
            self.config = Config(**data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

        self._setup_logging()
        return self.config

    def export(self) -> str:
        """Export current configuration as TOML."""
        data = self.config.model_dump(mode="json", exclude_none=True)
        return toml.dumps(data)

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)
        logging.getLogger(__name__).debug(
            "Configuration loaded from %s",
            self.config_file or "defaults",
        )


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime.

    Reconfigures logging based on the new config.
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None)
    _config_manager.config = new_config
    _config_manager._setup_logging()  # noqa: SLF001


def reset_config() -> None:
    """Drop the global configuration so the next access reloads it."""
    global _config_manager
    _config_manager = None

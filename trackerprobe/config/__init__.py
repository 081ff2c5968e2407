"""Configuration management.

This module handles configuration loading from TOML files and the environment.
"""

from __future__ import annotations

from trackerprobe.config.config import (
    Config,
    ConfigManager,
    get_config,
    init_config,
    reset_config,
    set_config,
)

__all__ = [
    "Config",
    "ConfigManager",
    "get_config",
    "init_config",
    "reset_config",
    "set_config",
]

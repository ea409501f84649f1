"""Configuration system for rdump.

This module provides TOML-based configuration loading, validation,
and schema definitions for the volumes to back up.
"""

from .loader import ConfigError, find_config_file, load_config, parse_config
from .schema import (
    Config,
    GlobalConfig,
    LvmVolume,
    MirrorConfig,
    SimpleVolume,
    Volume,
    ZfsEndpoint,
    ZfsReplication,
    ZfsVolume,
)

__all__ = [
    "Config",
    "GlobalConfig",
    "LvmVolume",
    "MirrorConfig",
    "SimpleVolume",
    "Volume",
    "ZfsEndpoint",
    "ZfsReplication",
    "ZfsVolume",
    "load_config",
    "parse_config",
    "find_config_file",
    "ConfigError",
]

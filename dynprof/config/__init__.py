"""Configuration snapshots, file access and controller settings.

Example:
    from dynprof.config import ConfigSnapshot, load_settings, read_config_file

    settings = load_settings()
    snapshot = ConfigSnapshot().parse(read_config_file(settings.base_config_path))
"""

from dynprof.config.settings import (
    CONFIG_FILE_ENV_VAR,
    DEFAULT_BASE_CONFIG_PATH,
    DEFAULT_ON_DEMAND_CONFIG_PATH,
    ControllerSettings,
    load_settings,
)
from dynprof.config.snapshot import DEFAULT_SIGNAL_ACTIVITIES_DURATION_MS, ConfigSnapshot
from dynprof.config.sources import read_config_file, write_config_file

__all__ = [
    "CONFIG_FILE_ENV_VAR",
    "DEFAULT_BASE_CONFIG_PATH",
    "DEFAULT_ON_DEMAND_CONFIG_PATH",
    "DEFAULT_SIGNAL_ACTIVITIES_DURATION_MS",
    "ConfigSnapshot",
    "ControllerSettings",
    "load_settings",
    "read_config_file",
    "write_config_file",
]

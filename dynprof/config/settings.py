"""
Control-plane settings.

Loads the controller settings from defaults.yaml with support for:
- DYNPROF_CONFIG environment override of the base config path
- Custom settings file paths
- Explicit keyword overrides (tests, embedding applications)
- Pydantic validation of intervals and paths

The on-demand config path is deliberately not environment-overridable: it is
the fixed drop location read when SIGUSR2 fires.

Example:
    settings = load_settings()
    settings.base_reload_interval_s  # 300.0

    fast = load_settings(base_reload_interval_s=0.1, daemon_poll_interval_s=0.05)
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dynprof.errors import SettingsError

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV_VAR = "DYNPROF_CONFIG"
DEFAULT_BASE_CONFIG_PATH = "/etc/dynprof.conf"
DEFAULT_ON_DEMAND_CONFIG_PATH = "/tmp/dynprof.conf"  # noqa: S108

_DEFAULTS_FILE = Path(__file__).resolve().parent / "defaults.yaml"


class ControllerSettings(BaseModel):
    """Settings for the config controller and its worker.

    Attributes:
        base_config_path: File holding the long-lived base configuration
        on_demand_config_path: File read when an on-demand signal arrives
        base_reload_interval_s: How often the base file is re-read
        daemon_poll_interval_s: How often the daemon client is polled
        verbose_override_duration_s: Lifetime of an on-demand verbose level
        join_timeout_s: Upper bound on joining the worker at shutdown
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_config_path: str = Field(DEFAULT_BASE_CONFIG_PATH, min_length=1)
    on_demand_config_path: str = Field(DEFAULT_ON_DEMAND_CONFIG_PATH, min_length=1)
    base_reload_interval_s: float = Field(300.0, gt=0)
    daemon_poll_interval_s: float = Field(5.0, gt=0)
    verbose_override_duration_s: float = Field(120.0, ge=0)
    join_timeout_s: float = Field(30.0, gt=0)

    @property
    def wait_interval_s(self) -> float:
        """Longest the worker sleeps between cycles."""
        return min(self.base_reload_interval_s, self.daemon_poll_interval_s)


def _read_settings_file(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        msg = f"Failed to load settings from {path}: {e}"
        raise SettingsError(msg, source=str(path)) from e

    if not isinstance(data, dict):
        msg = f"Settings file {path} must contain a mapping"
        raise SettingsError(msg, source=str(path))

    section = data.get("controller", {})
    if not isinstance(section, dict):
        msg = f"'controller' section in {path} must be a mapping"
        raise SettingsError(msg, source=str(path))
    return section


def load_settings(settings_file: str | Path | None = None, **overrides: Any) -> ControllerSettings:
    """Load controller settings.

    Precedence (highest to lowest):
    1. Keyword overrides
    2. DYNPROF_CONFIG environment variable (base_config_path only)
    3. Settings file (default: the packaged defaults.yaml)

    Args:
        settings_file: Optional YAML file with a 'controller' section
        **overrides: Field values that win over every other source

    Returns:
        Validated ControllerSettings

    Raises:
        SettingsError: If the file cannot be read or validation fails
    """
    path = Path(settings_file) if settings_file else _DEFAULTS_FILE
    values = _read_settings_file(path)

    env_path = os.environ.get(CONFIG_FILE_ENV_VAR)
    if env_path:
        values["base_config_path"] = env_path

    values.update(overrides)

    try:
        settings = ControllerSettings(**values)
    except ValidationError as e:
        msg = f"Invalid controller settings: {e}"
        raise SettingsError(msg, source=str(path)) from e

    logger.debug("Loaded controller settings from %s: %s", path, settings.model_dump())
    return settings

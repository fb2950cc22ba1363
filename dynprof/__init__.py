"""
dynprof: dynamic configuration control plane for a profiling library.

dynprof decides at runtime which profiling configuration is active. It
re-reads a base configuration file periodically, reacts to SIGUSR2 with an
on-demand profiling session, and polls an optional daemon for on-demand
requests.

Public API modules:
- dynprof.config: Configuration snapshots, file access and settings
- dynprof.runtime: Controller, worker, signal bridge and daemon contract
- dynprof.api: Client registration and profiler forwarding
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("dynprof")
except PackageNotFoundError:
    # Development checkout, not installed via pip
    __version__ = "0.1.0"

from dynprof.api import ProfilerApi, api
from dynprof.config import ConfigSnapshot, ControllerSettings, load_settings
from dynprof.runtime import ConfigController, register_daemon_client_factory

__all__ = [
    "ConfigController",
    "ConfigSnapshot",
    "ControllerSettings",
    "ProfilerApi",
    "__version__",
    "api",
    "load_settings",
    "register_daemon_client_factory",
]

"""
Logging, verbose-level control and counters for the control plane.
"""

from dynprof.observability.logging import ROOT_LOGGER_NAME, JSONFormatter, configure_logging
from dynprof.observability.metrics import OnDemandTarget, ReloadStats
from dynprof.observability.verbosity import (
    UNSET_VERBOSE_LEVEL,
    LoggingVerbosity,
    VerboseLogBackend,
    verbose_to_logging_level,
)

__all__ = [
    "ROOT_LOGGER_NAME",
    "UNSET_VERBOSE_LEVEL",
    "JSONFormatter",
    "LoggingVerbosity",
    "OnDemandTarget",
    "ReloadStats",
    "VerboseLogBackend",
    "configure_logging",
    "verbose_to_logging_level",
]

"""Verbose-log backend.

The control plane only needs two operations from the process logging backend:
set the verbose level (optionally restricted to some modules) and read the
current level. ``LoggingVerbosity`` implements them on top of the standard
``logging`` hierarchy: verbose level N maps to logging level ``DEBUG - N``, so
level 0 enables DEBUG and higher levels let ``logger.log(DEBUG - n, ...)``
through as well.
"""

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from dynprof.observability.logging import ROOT_LOGGER_NAME

UNSET_VERBOSE_LEVEL = -1


def verbose_to_logging_level(level: int) -> int:
    """Map a verbose level (>= 0) onto a stdlib logging level."""
    return max(logging.DEBUG - level, 1)


@runtime_checkable
class VerboseLogBackend(Protocol):
    """What the control plane needs from the logging backend."""

    def set_level(self, level: int, modules: Iterable[str] = ()) -> None:
        """Set the verbose level; -1 turns verbose logging off."""
        ...

    def level(self) -> int:
        """Current verbose level (-1 = off)."""
        ...


class LoggingVerbosity:
    """Verbose levels applied to loggers under the dynprof hierarchy.

    Module names are logger names relative to the root logger, e.g.
    ``runtime.scheduler``; fully qualified names are accepted too. With no
    modules the level applies to the root logger itself.
    """

    def __init__(self, root_logger: str = ROOT_LOGGER_NAME) -> None:
        self._root_logger = root_logger
        self._lock = threading.Lock()
        self._level = UNSET_VERBOSE_LEVEL
        self._modules: frozenset[str] = frozenset()
        self._touched: dict[str, int] = {}

    def _logger_name(self, module: str) -> str:
        if module == self._root_logger or module.startswith(f"{self._root_logger}."):
            return module
        return f"{self._root_logger}.{module}"

    def set_level(self, level: int, modules: Iterable[str] = ()) -> None:
        with self._lock:
            # Undo the previous override before applying a new one
            for name, previous in self._touched.items():
                logging.getLogger(name).setLevel(previous)
            self._touched = {}

            self._level = level if level >= 0 else UNSET_VERBOSE_LEVEL
            self._modules = frozenset(modules)
            if self._level == UNSET_VERBOSE_LEVEL:
                return

            names = [self._logger_name(m) for m in self._modules] or [self._root_logger]
            for name in names:
                target = logging.getLogger(name)
                self._touched[name] = target.level
                target.setLevel(verbose_to_logging_level(self._level))

    def level(self) -> int:
        with self._lock:
            return self._level

    def modules(self) -> frozenset[str]:
        with self._lock:
            return self._modules

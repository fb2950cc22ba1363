"""
Public entry points for the profiling engine and its clients.

An external client (for example a framework integration) can register once to
receive an init callback. The callback is assumed not to be thread-safe: it
only ever runs on the thread that registered the client. If the activity
profiler is already registered, ``register_client`` calls it straight away;
otherwise it runs when the profiler registers, provided that happens on the
same thread.

Usage:
    from dynprof.api import api

    api().register_client(my_client)
    api().register_activity_profiler(profiler)
    api().prepare_trace({"cpu_op", "kernel"})
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from dynprof.errors import ThreadAffinityError
from dynprof.runtime.controller import ConfigController

logger = logging.getLogger(__name__)


@runtime_checkable
class ClientInterface(Protocol):
    """Client that wants an init callback once profiling is ready."""

    def init(self) -> None: ...


@runtime_checkable
class ActivityProfiler(Protocol):
    """The profiling engine side used by the API."""

    def prepare_trace(self, activities: set[str]) -> None: ...


class ProfilerApi:
    """Registration and forwarding surface of the profiling library."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._client: ClientInterface | None = None
        self._client_register_thread: int | None = None
        self._client_initialized = False
        self._activity_profiler: ActivityProfiler | None = None

    @property
    def is_profiler_registered(self) -> bool:
        return self._activity_profiler is not None

    @property
    def client(self) -> ClientInterface | None:
        return self._client

    def register_client(self, client: ClientInterface | None) -> None:
        """Register the client, initializing it now if profiling is ready."""
        with self._lock:
            self._client = client
            self._client_initialized = False
            self._client_register_thread = threading.get_ident()
            ready = client is not None and self._activity_profiler is not None

        if ready:
            self._init_client(client)

    def init_client_if_registered(self) -> bool:
        """Run the client's init callback if it has not run yet.

        Returns:
            True if the callback ran
        """
        with self._lock:
            client = self._client
            if client is None or self._client_initialized:
                return False
            register_thread = self._client_register_thread

        current_thread = threading.get_ident()
        if register_thread != current_thread:
            error = ThreadAffinityError(register_thread or 0, current_thread)
            logger.error("%s", error.message)
            return False

        self._init_client(client)
        return True

    def _init_client(self, client: ClientInterface) -> None:
        with self._lock:
            if self._client_initialized:
                return
            self._client_initialized = True
        client.init()
        logger.debug("Initialized client %s", type(client).__name__)

    def register_activity_profiler(self, profiler: ActivityProfiler) -> None:
        """Register the profiling engine and initialize a waiting client."""
        with self._lock:
            self._activity_profiler = profiler
        self.init_client_if_registered()

    def prepare_trace(self, activities: Iterable[str]) -> None:
        """Forward a trace preparation request to the activity profiler."""
        profiler = self._activity_profiler
        if profiler is None:
            logger.warning("prepare_trace called before an activity profiler was registered")
            return
        profiler.prepare_trace(set(activities))

    def config_controller(self) -> ConfigController:
        return ConfigController.instance()


_api: ProfilerApi | None = None
_api_lock = threading.Lock()


def api() -> ProfilerApi:
    """Get the process-wide API instance."""
    global _api

    with _api_lock:
        if _api is None:
            _api = ProfilerApi()
        return _api

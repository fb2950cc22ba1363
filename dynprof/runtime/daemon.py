"""
Daemon client contract and factory registration.

An external daemon may push on-demand configuration and report GPU context
counts. The control plane only knows the two-call contract below; the wire
protocol belongs to the client implementation, which is also responsible for
bounding each call with its own timeout.

Usage:
    class MyDaemonClient:
        def read_on_demand_config(self, want_events: bool, want_activities: bool) -> str:
            ...

        def gpu_context_count(self, device_id: int) -> int:
            ...

    register_daemon_client_factory(MyDaemonClient)
"""

import logging
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from dynprof.errors import DaemonClientError

logger = logging.getLogger(__name__)


@runtime_checkable
class DaemonClient(Protocol):
    """Protocol for daemon clients."""

    def read_on_demand_config(self, want_events: bool, want_activities: bool) -> str:
        """Return on-demand config text, or "" when there is none or on failure."""
        ...

    def gpu_context_count(self, device_id: int) -> int:
        """Return the number of GPU contexts the daemon sees on a device."""
        ...


DaemonClientFactory = Callable[[], DaemonClient | None]

_factory_lock = threading.Lock()
_daemon_client_factory: DaemonClientFactory | None = None


def register_daemon_client_factory(factory: DaemonClientFactory | None) -> None:
    """Register the process-wide daemon client factory.

    Must be called before the controller first needs a client. The last
    registration wins; passing None disables daemon polling for controllers
    that have not created their client yet.
    """
    global _daemon_client_factory

    with _factory_lock:
        _daemon_client_factory = factory
    logger.info("Registered daemon client factory: %s", getattr(factory, "__name__", factory))


def get_daemon_client_factory() -> DaemonClientFactory | None:
    with _factory_lock:
        return _daemon_client_factory


class GuardedDaemonClient:
    """Wraps a daemon client so that failures degrade to empty answers."""

    def __init__(self, client: DaemonClient) -> None:
        self._client = client

    @property
    def wrapped(self) -> DaemonClient:
        return self._client

    def read_on_demand_config(self, want_events: bool, want_activities: bool) -> str:
        try:
            text = self._client.read_on_demand_config(want_events, want_activities)
        except Exception as e:
            error = DaemonClientError("read_on_demand_config", e)
            logger.error("%s", error.message)
            return ""
        return text or ""

    def gpu_context_count(self, device_id: int) -> int:
        try:
            return int(self._client.gpu_context_count(device_id))
        except Exception as e:
            error = DaemonClientError("gpu_context_count", e)
            logger.error("%s", error.message)
            return 0


def create_daemon_client() -> GuardedDaemonClient | None:
    """Build a client from the registered factory.

    Returns:
        A guarded client, or None when no factory is registered or it fails
    """
    factory = get_daemon_client_factory()
    if factory is None:
        logger.debug("No daemon client factory registered, daemon polling disabled")
        return None

    try:
        client = factory()
    except Exception as e:
        logger.error("Failed to create daemon client: %s", e)
        return None

    if client is None:
        return None
    return GuardedDaemonClient(client)

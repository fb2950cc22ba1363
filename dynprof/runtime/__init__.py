"""
Runtime of the control plane: controller, worker, signal bridge and daemon contract.

Example:
    from dynprof.runtime import ConfigController, register_daemon_client_factory

    register_daemon_client_factory(MyDaemonClient)
    controller = ConfigController.instance()
"""

from dynprof.runtime.controller import ConfigController, OneShotFlag
from dynprof.runtime.daemon import (
    DaemonClient,
    GuardedDaemonClient,
    get_daemon_client_factory,
    register_daemon_client_factory,
)
from dynprof.runtime.scheduler import ReconfigurationScheduler
from dynprof.runtime.signal_bridge import ON_DEMAND_SIGNAL, SignalBridge, SignalBridgeState

__all__ = [
    "ON_DEMAND_SIGNAL",
    "ConfigController",
    "DaemonClient",
    "GuardedDaemonClient",
    "OneShotFlag",
    "ReconfigurationScheduler",
    "SignalBridge",
    "SignalBridgeState",
    "get_daemon_client_factory",
    "register_daemon_client_factory",
]

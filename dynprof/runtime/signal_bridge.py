"""SIGUSR2 bridge for on-demand profiling requests.

Sending SIGUSR2 to the process asks the control plane to read the on-demand
config file and start a profiling session. The bridge owns the process-wide
signal slot and models it as an explicit state machine:

    NOT_INSTALLED --install()--> INSTALLED_NO_CHAIN   (slot held SIG_DFL/SIG_IGN/C handler)
    NOT_INSTALLED --install()--> INSTALLED_CHAINED    (slot held a Python handler)
    INSTALLED_*   --uninstall()-> NOT_INSTALLED       (original handler restored)

The handler body only sets the controller's one-shot flag and wakes the worker,
then forwards to the chained handler if there is one. Python already runs
signal handlers on the main thread between bytecodes, and never blocks a
handler against re-entry, so a second signal during handling is still
delivered.

``signal.signal`` can only be called from the main thread. Calls from any
other thread raise ``SignalHandlerInstallError``.
"""

from __future__ import annotations

import logging
import signal
from enum import Enum
from types import FrameType
from typing import TYPE_CHECKING, Any

from dynprof.errors import SignalHandlerInstallError

if TYPE_CHECKING:
    from dynprof.runtime.controller import ConfigController

logger = logging.getLogger(__name__)

ON_DEMAND_SIGNAL: int | None = getattr(signal, "SIGUSR2", None)

# Published before a handler is installed, cleared after it is removed
_active_controller: ConfigController | None = None


def publish_controller(controller: ConfigController) -> None:
    global _active_controller
    _active_controller = controller


def retract_controller(controller: ConfigController) -> None:
    global _active_controller
    if _active_controller is controller:
        _active_controller = None


def active_controller() -> ConfigController | None:
    return _active_controller


class SignalBridgeState(Enum):
    """Ownership of the on-demand signal slot."""

    NOT_INSTALLED = "not_installed"
    INSTALLED_NO_CHAIN = "installed_no_chain"
    INSTALLED_CHAINED = "installed_chained"


def _is_bridge_handler(handler: Any) -> bool:
    return isinstance(getattr(handler, "__self__", None), SignalBridge)


class SignalBridge:
    """Installs and removes the on-demand signal handler."""

    def __init__(self, signum: int | None = ON_DEMAND_SIGNAL) -> None:
        self._signum = signum
        self._state = SignalBridgeState.NOT_INSTALLED
        self._original: Any = None

    @property
    def state(self) -> SignalBridgeState:
        return self._state

    @property
    def installed(self) -> bool:
        return self._state is not SignalBridgeState.NOT_INSTALLED

    @property
    def original_handler(self) -> Any:
        """Handler found in the slot at install time (None when not installed)."""
        return self._original

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        controller = _active_controller
        if controller is not None:
            controller.handle_on_demand_signal()
        original = self._original
        if self._state is SignalBridgeState.INSTALLED_CHAINED and callable(original):
            original(signum, frame)

    def install(self) -> None:
        """Install the handler, remembering whatever occupied the slot.

        Idempotent: installing twice keeps the original from the first call.

        Raises:
            SignalHandlerInstallError: If the handler cannot be registered
        """
        if self.installed:
            return
        if self._signum is None:
            raise SignalHandlerInstallError(-1, ValueError("SIGUSR2 is not available on this platform"))

        try:
            previous = signal.signal(self._signum, self._handle_signal)
        except (ValueError, OSError, RuntimeError) as e:
            raise SignalHandlerInstallError(self._signum, e) from e

        if _is_bridge_handler(previous):
            # A stale bridge is not a handler worth chaining to
            previous = signal.SIG_DFL
        elif previous is None:
            logger.warning(
                "Signal %s had a handler installed outside Python; it cannot be chained "
                "and uninstall will restore SIG_DFL instead",
                self._signum,
            )

        self._original = previous
        self._state = (
            SignalBridgeState.INSTALLED_CHAINED
            if callable(previous)
            else SignalBridgeState.INSTALLED_NO_CHAIN
        )
        logger.info("Installed on-demand signal handler (%s)", self._state.value)

    def uninstall(self) -> None:
        """Restore the handler recorded at install time.

        No-op when not installed. If something else replaced the bridge's
        handler in the meantime, the slot is left alone.

        Raises:
            SignalHandlerInstallError: If the original handler cannot be restored
        """
        if not self.installed:
            return

        # None means a handler installed outside Python; it cannot be restored
        original = self._original if self._original is not None else signal.SIG_DFL
        try:
            if signal.getsignal(self._signum) == self._handle_signal:
                signal.signal(self._signum, original)
            else:
                logger.warning("On-demand signal slot was replaced by another handler, leaving it")
        except (ValueError, OSError, RuntimeError) as e:
            raise SignalHandlerInstallError(self._signum, e) from e

        self._original = None
        self._state = SignalBridgeState.NOT_INSTALLED
        logger.info("Removed on-demand signal handler")

    def sync(self, enabled: bool) -> None:
        """Install or uninstall to match the base configuration flag."""
        if enabled:
            self.install()
        else:
            self.uninstall()

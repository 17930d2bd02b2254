"""
network_monitor.py - Reachability Monitor

This module tracks whether the remote service is reachable, based on
probe success/failure or on platform-pushed connectivity signals, and
notifies subscribers on every transition.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from .event_bus import REACHABILITY, EventBus

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("NetworkMonitor")


class NetworkMonitor:
    """
    Exposes the current reachability flag and a change stream.

    Repeated identical states never re-fire subscribers. A probe failure
    only flips the flag after max_failures_before_offline consecutive
    failures; one success always restores it.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        initial_reachable: bool = True,
        max_failures_before_offline: int = 1,
    ):
        self.event_bus = event_bus
        self._reachable = initial_reachable
        self.max_failures_before_offline = max(1, max_failures_before_offline)
        self.consecutive_failures = 0
        self.last_probe_success: Optional[datetime] = None
        self.last_change: Optional[datetime] = None
        self._callbacks: List[Callable[[bool], object]] = []
        self._running = False

        logger.info(f"NetworkMonitor initialized (reachable={initial_reachable})")

    # ==================== State ====================

    def is_reachable(self) -> bool:
        return self._reachable

    def set_reachable(self, reachable: bool, reason: str = "") -> bool:
        """
        Record the current reachability.

        Returns True if this was a transition (subscribers notified).
        """
        if reachable == self._reachable:
            return False

        self._reachable = reachable
        self.last_change = datetime.now()
        label = "reachable" if reachable else "unreachable"
        logger.info(f"Remote {label} | Reason: {reason}")

        for callback in list(self._callbacks):
            try:
                callback(reachable)
            except Exception as e:
                logger.error(f"Reachability callback error: {e}")

        if self.event_bus is not None:
            self.event_bus.publish(REACHABILITY, {"reachable": reachable, "reason": reason})
        return True

    # ==================== Probe Handling ====================

    def on_probe_success(self):
        self.last_probe_success = datetime.now()
        self.consecutive_failures = 0
        self.set_reachable(True, "Probe succeeded")

    def on_probe_failure(self, error: str = ""):
        self.consecutive_failures += 1
        logger.warning(
            f"Probe failed ({self.consecutive_failures}/"
            f"{self.max_failures_before_offline}): {error}"
        )
        if self.consecutive_failures >= self.max_failures_before_offline:
            self.set_reachable(
                False,
                f"Connection lost after {self.consecutive_failures} failures",
            )

    def on_connection_lost(self):
        """Platform reported loss of connectivity: go unreachable immediately."""
        self.consecutive_failures = self.max_failures_before_offline
        self.set_reachable(False, "Connection lost")

    async def probe_once(self, probe: Callable[[], Awaitable[bool]]) -> bool:
        try:
            ok = await probe()
        except Exception as e:
            self.on_probe_failure(str(e))
            return False
        if ok:
            self.on_probe_success()
        else:
            self.on_probe_failure("probe returned failure")
        return bool(ok)

    async def run(self, probe: Callable[[], Awaitable[bool]], interval: float = 10.0):
        """Poll the probe until stop() is called (or the task is cancelled)."""
        self._running = True
        logger.info(f"Polling reachability every {interval}s")
        while self._running:
            await self.probe_once(probe)
            await asyncio.sleep(interval)

    def stop(self):
        self._running = False

    # ==================== Callbacks ====================

    def subscribe(self, callback: Callable[[bool], object]) -> Callable[[], None]:
        """
        Register a callback for reachability transitions.

        Callback signature: (reachable: bool)
        """
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    # ==================== Status Report ====================

    def get_status(self) -> dict:
        return {
            "reachable": self._reachable,
            "consecutive_failures": self.consecutive_failures,
            "last_probe_success": self.last_probe_success.isoformat() if self.last_probe_success else None,
            "last_change": self.last_change.isoformat() if self.last_change else None,
        }

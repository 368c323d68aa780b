"""Periodic check that the bluetooth service is reachable.

Only the systemd unit state is probed; devices are never enumerated and
the operation lock is never taken, so the check cannot delay a connect.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manager import BluetoothAudioManager

logger = logging.getLogger(__name__)


class ServiceMonitor:
    """Refreshes the manager's cached service-reachable flag."""

    def __init__(self, manager: "BluetoothAudioManager", interval: float = 60):
        self._manager = manager
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Service monitor started (every %gs)", self._interval)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Service monitor stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self._manager.check_service()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Service check crashed")
            await asyncio.sleep(self._interval)

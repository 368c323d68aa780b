"""Start and probe the bluetooth systemd unit over the system D-Bus."""

import asyncio
import logging

from dbus_next import BusType, Message, MessageType
from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError

from ..errors import ServiceUnavailable
from .constants import (
    DEFAULT_BLUETOOTH_UNIT,
    PROPERTIES_INTERFACE,
    SYSTEMD_MANAGER_INTERFACE,
    SYSTEMD_PATH,
    SYSTEMD_SERVICE,
    SYSTEMD_UNIT_INTERFACE,
)

logger = logging.getLogger(__name__)


class BluetoothService:
    """Thin systemd client for the unit that runs bluetoothd.

    With ``enabled=False`` (containers without systemd) nothing is ever
    started and the service is assumed to be running.
    """

    POLL_INTERVAL = 0.5  # seconds between ActiveState polls after StartUnit

    def __init__(
        self,
        unit: str = DEFAULT_BLUETOOTH_UNIT,
        timeout: float = 10.0,
        enabled: bool = True,
    ):
        self.unit = unit
        self.enabled = enabled
        self._timeout = timeout

    async def _connect(self) -> MessageBus:
        try:
            return await MessageBus(bus_type=BusType.SYSTEM).connect()
        except (OSError, DBusError) as e:
            raise ServiceUnavailable(f"System D-Bus not reachable: {e}") from e

    async def _call(self, bus: MessageBus, **kwargs) -> Message:
        reply = await bus.call(Message(destination=SYSTEMD_SERVICE, **kwargs))
        if reply.message_type == MessageType.ERROR:
            detail = reply.body[0] if reply.body else reply.error_name
            raise ServiceUnavailable(f"systemd {kwargs['member']} failed: {detail}")
        return reply

    async def _active_state(self, bus: MessageBus) -> str:
        reply = await self._call(
            bus,
            path=SYSTEMD_PATH,
            interface=SYSTEMD_MANAGER_INTERFACE,
            member="LoadUnit",
            signature="s",
            body=[self.unit],
        )
        unit_path = reply.body[0]
        reply = await self._call(
            bus,
            path=unit_path,
            interface=PROPERTIES_INTERFACE,
            member="Get",
            signature="ss",
            body=[SYSTEMD_UNIT_INTERFACE, "ActiveState"],
        )
        return reply.body[0].value

    async def is_active(self) -> bool:
        """True if the unit's ActiveState is ``active``."""
        if not self.enabled:
            return True
        bus = await self._connect()
        try:
            state = await asyncio.wait_for(self._active_state(bus), self._timeout)
        except asyncio.TimeoutError:
            raise ServiceUnavailable(f"Timed out querying {self.unit}") from None
        finally:
            bus.disconnect()
        return state == "active"

    async def ensure_running(self) -> bool:
        """Start the unit if it is not active.

        Returns True when a start was needed, False when it was already
        running.  Raises :class:`ServiceUnavailable` if it cannot be started.
        """
        if not self.enabled:
            return False
        bus = await self._connect()
        try:
            return await asyncio.wait_for(self._start_if_stopped(bus), self._timeout)
        except asyncio.TimeoutError:
            raise ServiceUnavailable(
                f"{self.unit} did not become active within {self._timeout:g}s"
            ) from None
        finally:
            bus.disconnect()

    async def _start_if_stopped(self, bus: MessageBus) -> bool:
        state = await self._active_state(bus)
        if state == "active":
            return False

        logger.info("%s is %s, starting it", self.unit, state)
        await self._call(
            bus,
            path=SYSTEMD_PATH,
            interface=SYSTEMD_MANAGER_INTERFACE,
            member="StartUnit",
            signature="ss",
            body=[self.unit, "replace"],
        )
        while True:
            await asyncio.sleep(self.POLL_INTERVAL)
            state = await self._active_state(bus)
            if state == "active":
                logger.info("%s started", self.unit)
                return True
            if state == "failed":
                raise ServiceUnavailable(f"{self.unit} failed to start")

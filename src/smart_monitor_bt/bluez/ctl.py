"""Typed client for the bluetoothctl command-line tool.

Every operation is one short-lived ``bluetoothctl <command>`` invocation
with an explicit timeout.  Discovery is the exception: BlueZ stops a
client's discovery session when that client exits, so scanning keeps a
``bluetoothctl --timeout N scan on`` process alive for the whole window.
"""

import asyncio
import logging

from ..errors import ParseError, ToolReportedFailure
from ..models import BluetoothDevice, DeviceInfo, validate_device_id
from ..process import CommandResult, CommandRunner
from .parser import (
    find_failure,
    is_already_paired,
    parse_device_info,
    parse_device_list,
)

logger = logging.getLogger(__name__)


class BluetoothCtl:
    """Control-plane client wrapping bluetoothctl."""

    def __init__(
        self,
        runner: CommandRunner,
        binary: str = "bluetoothctl",
        command_timeout: float = 5.0,
        connect_timeout: float = 15.0,
    ):
        self._runner = runner
        self._binary = binary
        self._command_timeout = command_timeout
        self._connect_timeout = connect_timeout
        self._scan_proc: asyncio.subprocess.Process | None = None

    @property
    def discovering(self) -> bool:
        return self._scan_proc is not None and self._scan_proc.returncode is None

    async def _run(self, *args: str, timeout: float | None = None) -> CommandResult:
        return await self._runner.run(
            self._binary, *args, timeout=timeout or self._command_timeout
        )

    async def _checked(self, *args: str, timeout: float | None = None) -> CommandResult:
        """Run a command and raise if it failed by exit code or by its text."""
        result = await self._run(*args, timeout=timeout)
        failure = find_failure(result.output)
        if not result.ok or failure:
            detail = failure or result.output or f"exit status {result.returncode}"
            raise ToolReportedFailure(result.command, detail, result.returncode)
        return result

    # -- Discovery --

    async def start_discovery(self, duration: float) -> None:
        """Begin a discovery window of *duration* seconds in the background."""
        if self.discovering:
            await self.stop_discovery()
        seconds = max(1, int(round(duration)))
        self._scan_proc = await self._runner.spawn(
            self._binary, "--timeout", str(seconds), "scan", "on"
        )
        logger.info("Discovery started for %ds", seconds)

    async def stop_discovery(self) -> None:
        """End the discovery window early (no-op if none is running)."""
        proc, self._scan_proc = self._scan_proc, None
        if proc is not None and proc.returncode is None:
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=self._command_timeout)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
        result = await self._run("scan", "off")
        if not result.ok:
            # BlueZ refuses "scan off" when nothing is discovering
            logger.debug("scan off: %s", result.output)
        logger.info("Discovery stopped")

    # -- Queries --

    async def list_devices(self) -> list[BluetoothDevice]:
        result = await self._checked("devices")
        devices = parse_device_list(result.stdout)
        logger.debug("bluetoothctl knows %d device(s)", len(devices))
        return devices

    async def get_device_info(self, address: str) -> DeviceInfo:
        """Return parsed info; :class:`ParseError` if the device is unknown."""
        validate_device_id(address)
        result = await self._run("info", address)
        if not result.ok:
            failure = find_failure(result.output)
            if failure and not failure.endswith("not available"):
                raise ToolReportedFailure(result.command, failure, result.returncode)
        try:
            return parse_device_info(address, result.output)
        except ParseError:
            logger.debug("info %s: %s", address, result.output)
            raise

    # -- Lifecycle commands --

    async def trust(self, address: str) -> None:
        validate_device_id(address)
        await self._checked("trust", address)
        logger.info("Trusted %s", address)

    async def pair(self, address: str) -> bool:
        """Pair with a device.

        Returns True if a new pairing was made and False if the device was
        already paired; the latter is not an error.
        """
        validate_device_id(address)
        result = await self._run("pair", address, timeout=self._connect_timeout)
        if is_already_paired(result.output):
            logger.info("%s is already paired", address)
            return False
        failure = find_failure(result.output)
        if not result.ok or failure:
            detail = failure or result.output or f"exit status {result.returncode}"
            raise ToolReportedFailure(result.command, detail, result.returncode)
        logger.info("Paired %s", address)
        return True

    async def connect(self, address: str) -> None:
        validate_device_id(address)
        await self._checked("connect", address, timeout=self._connect_timeout)
        logger.info("Connected %s", address)

    async def disconnect(self, address: str) -> None:
        validate_device_id(address)
        await self._checked("disconnect", address)
        logger.info("Disconnected %s", address)

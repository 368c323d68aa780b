"""Top-level orchestrator for the Bluetooth audio device lifecycle.

Coordinates the bluetoothctl client, the audio router, the bluetooth
systemd unit and the confirmation tone.  Every state-changing operation
runs under the writer side of the process-wide operation lock.
"""

import asyncio
import logging

from .audio.pulse import AudioRouter
from .audio.tone import ConfirmationTone
from .bluez.ctl import BluetoothCtl
from .bluez.service import BluetoothService
from .config import AppConfig
from .errors import BluetoothAudioError, ServiceUnavailable
from .locks import BLUETOOTH_OPERATIONS, OperationLock
from .models import (
    UNKNOWN_DEVICE_NAME,
    AudioSink,
    BluetoothDevice,
    ConnectionAttempt,
    OrchestratorState,
    StepStatus,
    utc_timestamp,
    validate_device_id,
)
from .process import CommandRunner
from .status import DeviceStateAggregator

logger = logging.getLogger(__name__)

# Steps of a connection attempt, in execution order
CONNECT_STEPS = (
    "preflight",
    "clear-prior",
    "trust",
    "pair",
    "reconnect-check",
    "connect",
    "route-audio",
    "confirmation-tone",
)


class BluetoothAudioManager:
    """Central orchestrator for the Smart Monitor Bluetooth audio service."""

    def __init__(
        self,
        config: AppConfig,
        ctl: BluetoothCtl,
        audio: AudioRouter,
        service: BluetoothService,
        tone: ConfirmationTone,
        lock: OperationLock | None = None,
        state: OrchestratorState | None = None,
    ):
        self.config = config
        self.ctl = ctl
        self.audio = audio
        self.service = service
        self.tone = tone
        self.lock = lock or BLUETOOTH_OPERATIONS
        self.state = state or OrchestratorState()
        self.aggregator = DeviceStateAggregator(ctl, audio, service)
        self._scan_stop: asyncio.Event | None = None
        self._queued_scans = 0
        self._stop_requested = False

    @classmethod
    def from_config(cls, config: AppConfig) -> "BluetoothAudioManager":
        """Wire the real subprocess/D-Bus/PulseAudio clients."""
        runner = CommandRunner(config.command_timeout_seconds)
        ctl = BluetoothCtl(
            runner,
            binary=config.bluetoothctl_path,
            command_timeout=config.command_timeout_seconds,
            connect_timeout=config.connect_timeout_seconds,
        )
        audio = AudioRouter(
            runner,
            pacmd_path=config.pacmd_path,
            pactl_path=config.pactl_path,
            builtin_sink=config.builtin_sink,
            timeout=config.command_timeout_seconds,
        )
        service = BluetoothService(
            config.bluetooth_unit,
            timeout=config.connect_timeout_seconds,
            enabled=config.manage_service,
        )
        tone = ConfirmationTone(runner, config.confirmation_sound, config.tone_player)
        return cls(config, ctl, audio, service, tone)

    @staticmethod
    async def _settle(seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    # -- Connect --

    async def connect(
        self, device_id: str, device_name: str | None = None
    ) -> ConnectionAttempt:
        """Make *device_id* the single connected device and route audio to it.

        Only a failed preflight or a failed ``connect`` ends the attempt
        with ``connected=False``; everything else is recorded and tolerated.
        """
        validate_device_id(device_id)
        async with self.lock.write("connect"):
            attempt = ConnectionAttempt(device_id, device_name or UNKNOWN_DEVICE_NAME)
            self.state.last_attempt = attempt
            logger.info("Connecting to %s (%s)", attempt.device_name, device_id)
            if await self._run_connect_steps(attempt, device_name):
                logger.info("%s: %s", device_id, attempt.summary)
            else:
                step = attempt.fatal_step
                logger.warning(
                    "Connection to %s failed at %s: %s",
                    device_id, step.name, step.reason,
                )
            return attempt

    async def _run_connect_steps(
        self, attempt: ConnectionAttempt, device_name: str | None
    ) -> bool:
        device_id = attempt.device_id

        # 1. Make sure bluetoothd is running
        if not self.service.enabled:
            attempt.record("preflight", StepStatus.SKIPPED, "service management disabled")
        else:
            try:
                started = await self.service.ensure_running()
                attempt.record(
                    "preflight",
                    StepStatus.SUCCEEDED,
                    f"started {self.service.unit}" if started else None,
                )
            except ServiceUnavailable as e:
                attempt.record("preflight", StepStatus.FAILED_FATAL, str(e), e)
                self._skip_remaining(attempt)
                return False

        # 2. Single active device: drop everything else first
        await self._clear_prior(attempt)

        # 3. Trust and pair; neither may stop the attempt
        try:
            await self.ctl.trust(device_id)
            attempt.record("trust", StepStatus.SUCCEEDED)
        except BluetoothAudioError as e:
            logger.warning("Trust %s failed: %s", device_id, e)
            attempt.record("trust", StepStatus.FAILED_NON_FATAL, str(e))
        try:
            paired = await self.ctl.pair(device_id)
            attempt.record(
                "pair", StepStatus.SUCCEEDED, None if paired else "already paired"
            )
        except BluetoothAudioError as e:
            logger.warning("Pair %s failed, assuming already paired: %s", device_id, e)
            attempt.record("pair", StepStatus.FAILED_NON_FATAL, str(e))

        # 4. An already-connected target is cycled for a clean audio profile
        try:
            info = await self.ctl.get_device_info(device_id)
        except BluetoothAudioError as e:
            logger.warning("Could not read info for %s: %s", device_id, e)
            attempt.record("reconnect-check", StepStatus.FAILED_NON_FATAL, str(e))
        else:
            if device_name is None:
                attempt.device_name = info.display_name
            if not info.connected:
                attempt.record("reconnect-check", StepStatus.SUCCEEDED, "not connected")
            else:
                attempt.was_reconnected = True
                try:
                    await self.ctl.disconnect(device_id)
                except BluetoothAudioError as e:
                    logger.warning("Disconnect before reconnect failed: %s", e)
                    attempt.record("reconnect-check", StepStatus.FAILED_NON_FATAL, str(e))
                else:
                    await self._settle(self.config.reconnect_settle_seconds)
                    attempt.record(
                        "reconnect-check", StepStatus.SUCCEEDED, "disconnected for reconnect"
                    )

        # 5. Connect
        try:
            await self.ctl.connect(device_id)
        except BluetoothAudioError as e:
            attempt.record("connect", StepStatus.FAILED_FATAL, str(e), e)
            if self.state.active_device_id == device_id:
                self.state.clear_active()
            self._skip_remaining(attempt)
            return False
        attempt.connected = True
        self.state.active_device_id = device_id
        await self._settle(self.config.connect_settle_seconds)
        await self._settle(self.config.audio_ready_seconds)
        attempt.record("connect", StepStatus.SUCCEEDED)

        # 6. Route audio; failure leaves the device connected
        sink_name = self.audio.sink_name_for(device_id)
        attempt.sink_name = sink_name
        try:
            await self.audio.set_default_sink(sink_name)
        except BluetoothAudioError as e:
            logger.warning("Audio routing to %s failed: %s", sink_name, e)
            attempt.record("route-audio", StepStatus.FAILED_NON_FATAL, str(e))
            await self._log_available_sinks()
        else:
            attempt.audio_routed = True
            self.state.active_sink = sink_name
            attempt.record("route-audio", StepStatus.SUCCEEDED)

        # 7. Confirmation tone
        if not self.tone.configured:
            attempt.record("confirmation-tone", StepStatus.SKIPPED, "no sound configured")
        elif not attempt.audio_routed:
            attempt.record("confirmation-tone", StepStatus.SKIPPED, "audio not routed")
        else:
            try:
                await self.tone.play()
                attempt.record("confirmation-tone", StepStatus.SUCCEEDED)
            except BluetoothAudioError as e:
                logger.warning("Confirmation sound failed: %s", e)
                attempt.record("confirmation-tone", StepStatus.FAILED_NON_FATAL, str(e))
        return True

    async def _clear_prior(self, attempt: ConnectionAttempt) -> None:
        try:
            connected = await self.aggregator.connected_devices()
        except BluetoothAudioError as e:
            logger.warning("Could not enumerate connected devices: %s", e)
            attempt.record("clear-prior", StepStatus.FAILED_NON_FATAL, str(e))
            return

        cleared: list[str] = []
        errors: list[str] = []
        for device in connected:
            if device.id == attempt.device_id:
                continue
            try:
                await self.ctl.disconnect(device.id)
            except BluetoothAudioError as e:
                logger.warning("Could not disconnect %s: %s", device.id, e)
                errors.append(f"{device.id}: {e}")
                continue
            cleared.append(device.id)
            if self.state.active_device_id == device.id:
                self.state.clear_active()
            await self._settle(self.config.prior_disconnect_settle_seconds)

        if errors:
            attempt.record("clear-prior", StepStatus.FAILED_NON_FATAL, "; ".join(errors))
        else:
            attempt.record(
                "clear-prior",
                StepStatus.SUCCEEDED,
                f"disconnected {', '.join(cleared)}" if cleared else None,
            )

    @staticmethod
    def _skip_remaining(attempt: ConnectionAttempt) -> None:
        done = {step.name for step in attempt.steps}
        for name in CONNECT_STEPS:
            if name not in done:
                attempt.record(name, StepStatus.SKIPPED)

    async def _log_available_sinks(self) -> None:
        try:
            sinks = await self.audio.list_sink_names()
        except BluetoothAudioError as e:
            logger.debug("Could not list sinks: %s", e)
            return
        logger.info("Available sinks: %s", ", ".join(sinks) or "(none)")

    async def _reset_audio(self) -> bool:
        try:
            await self.audio.reset_to_builtin_output()
        except BluetoothAudioError as e:
            logger.warning("Could not restore built-in audio output: %s", e)
            return False
        self.state.active_sink = None
        return True

    # -- Disconnect --

    async def disconnect_all(self) -> dict:
        """Disconnect every connected device and restore built-in audio."""
        async with self.lock.write("disconnect-all"):
            connected = await self.aggregator.connected_devices()
            disconnected: list[dict] = []
            failed: list[dict] = []
            for i, device in enumerate(connected):
                if i:
                    await self._settle(self.config.prior_disconnect_settle_seconds)
                try:
                    await self.ctl.disconnect(device.id)
                    disconnected.append({"id": device.id, "name": device.name})
                except BluetoothAudioError as e:
                    logger.warning("Could not disconnect %s: %s", device.id, e)
                    failed.append({"id": device.id, "name": device.name, "error": str(e)})

            audio_reset = await self._reset_audio()
            self.state.clear_active()
            logger.info(
                "Disconnected %d device(s), %d failed", len(disconnected), len(failed)
            )
            return {
                "disconnected": not failed,
                "devicesDisconnected": len(disconnected),
                "disconnectedDevices": disconnected,
                "failedDevices": failed,
                "audioReset": audio_reset,
                "timestamp": utc_timestamp(),
            }

    async def disconnect_one(self, device_id: str) -> dict:
        """Disconnect one device if it is connected."""
        validate_device_id(device_id)
        async with self.lock.write("disconnect"):
            info = await self.ctl.get_device_info(device_id)
            if not info.connected:
                return {
                    "disconnected": False,
                    "wasConnected": False,
                    "deviceId": device_id,
                    "message": "Device was not connected",
                    "timestamp": utc_timestamp(),
                }

            await self.ctl.disconnect(device_id)
            await self._settle(self.config.disconnect_settle_seconds)
            if self.state.active_device_id == device_id:
                self.state.clear_active()
            audio_reset = await self._reset_audio()
            return {
                "disconnected": True,
                "wasConnected": True,
                "deviceId": device_id,
                "deviceName": info.display_name,
                "audioReset": audio_reset,
                "message": f"Disconnected {info.display_name}",
                "timestamp": utc_timestamp(),
            }

    # -- Discovery --

    @property
    def is_scanning(self) -> bool:
        return self._scan_stop is not None

    async def scan(self, duration: float | None = None) -> list[BluetoothDevice]:
        """Run a discovery window, then return every known device.

        The window ends after *duration* seconds or when :meth:`stop_scan`
        is called, whichever comes first.  A stop that arrives while the
        scan is still waiting for the operation lock cancels the window.
        """
        duration = duration or self.config.scan_duration_seconds
        waiting = True
        self._queued_scans += 1
        try:
            async with self.lock.write("scan"):
                waiting = False
                self._queued_scans -= 1
                if self._stop_requested:
                    self._stop_requested = False
                    logger.info("Scan stopped before it started")
                    return await self.ctl.list_devices()
                await self._discovery_window(duration)
                return await self.ctl.list_devices()
        finally:
            if waiting:
                self._queued_scans -= 1
                if not self._queued_scans:
                    self._stop_requested = False

    async def _discovery_window(self, duration: float) -> None:
        stop = self._scan_stop = asyncio.Event()
        self.state.scanning = True
        try:
            await self.ctl.start_discovery(duration)
            try:
                await asyncio.wait_for(stop.wait(), timeout=duration)
                logger.info("Scan stopped early")
            except asyncio.TimeoutError:
                pass
        finally:
            self._scan_stop = None
            self.state.scanning = False
            try:
                await self.ctl.stop_discovery()
            except BluetoothAudioError as e:
                logger.debug("Stopping discovery failed: %s", e)

    async def stop_scan(self) -> bool:
        """End a running or queued discovery window.

        Returns True if a window was running or waiting to run.  Does not
        wait for the operation lock in that case.
        """
        if self._scan_stop is not None:
            self._scan_stop.set()
            return True
        if self._queued_scans:
            self._stop_requested = True
            return True
        async with self.lock.write("stop-scan"):
            await self.ctl.stop_discovery()
        return False

    # -- Status --

    async def status(self) -> dict:
        async with self.lock.read():
            return await self.aggregator.snapshot()

    async def check_service(self) -> bool:
        """Refresh the cached service-reachable flag.  Takes no lock."""
        try:
            reachable = await self.service.is_active()
        except BluetoothAudioError as e:
            logger.warning("Bluetooth service check failed: %s", e)
            reachable = False
        if reachable != self.state.service_reachable:
            logger.info(
                "Bluetooth service is %s", "reachable" if reachable else "unreachable"
            )
        self.state.service_reachable = reachable
        self.state.service_checked_at = utc_timestamp()
        return reachable

    # -- Volume --

    async def audio_status(self) -> dict:
        async with self.lock.read():
            name = await self.audio.get_default_sink_name()
            volume, muted = await self.audio.get_volume_and_mute(name)
        sink = AudioSink(name, volume, muted)
        return {
            "volume": sink.volume,
            "muted": sink.muted,
            "audioSink": sink.name,
            "isBluetoothAudio": self.audio.is_bluetooth_sink(sink.name),
        }

    async def set_volume(self, level: int) -> int:
        """Set the default sink's volume and unmute it."""
        async with self.lock.write("set-volume"):
            level = await self.audio.set_volume(None, level)
            await self.audio.set_mute(None, False)
            return level

    async def set_muted(self, muted: bool) -> None:
        async with self.lock.write("set-mute"):
            await self.audio.set_mute(None, muted)

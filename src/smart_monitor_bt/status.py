"""Point-in-time view of Bluetooth connections and audio output."""

import logging

from .audio.pulse import AudioRouter
from .bluez.ctl import BluetoothCtl
from .bluez.service import BluetoothService
from .errors import BluetoothAudioError
from .models import BluetoothDevice, utc_timestamp

logger = logging.getLogger(__name__)

UNKNOWN_SINK = "unknown"


class DeviceStateAggregator:
    """Combines control-plane and audio-server state into one snapshot."""

    def __init__(self, ctl: BluetoothCtl, audio: AudioRouter, service: BluetoothService):
        self._ctl = ctl
        self._audio = audio
        self._service = service

    async def connected_devices(self) -> list[BluetoothDevice]:
        """Enumerate known devices and keep the ones reporting Connected.

        Info is queried one device at a time; bluetoothctl serializes on
        the daemon anyway.  A device whose info query fails is skipped.
        Enumeration failure propagates.
        """
        connected: list[BluetoothDevice] = []
        for device in await self._ctl.list_devices():
            try:
                info = await self._ctl.get_device_info(device.id)
            except BluetoothAudioError as e:
                logger.debug("Skipping %s in status: %s", device.id, e)
                continue
            if not info.connected:
                continue
            connected.append(
                BluetoothDevice(
                    id=device.id,
                    name=info.alias or info.name or device.name,
                    paired=info.paired,
                    connected=True,
                    is_audio_device=info.is_audio_device,
                )
            )
        return connected

    async def _service_active(self) -> bool:
        try:
            return await self._service.is_active()
        except BluetoothAudioError as e:
            logger.warning("Could not query bluetooth service: %s", e)
            return False

    async def _default_sink(self) -> str:
        try:
            return await self._audio.get_default_sink_name() or UNKNOWN_SINK
        except BluetoothAudioError as e:
            logger.warning("Could not read default sink: %s", e)
            return UNKNOWN_SINK

    async def snapshot(self) -> dict:
        """Build the status snapshot.  Never raises."""
        service_active = await self._service_active()
        try:
            devices = await self.connected_devices()
        except BluetoothAudioError as e:
            logger.warning("Device enumeration failed: %s", e)
            return _failed_snapshot(e)
        except Exception as e:
            logger.exception("Unexpected error enumerating devices")
            return _failed_snapshot(e)

        sink = await self._default_sink()
        audio_devices = [d for d in devices if d.is_audio_device]
        return {
            "serviceActive": service_active,
            "connectedDevices": [d.to_dict() for d in devices],
            "audioDevices": [d.to_dict() for d in audio_devices],
            "currentAudioSink": sink,
            "isBluetoothAudio": AudioRouter.is_bluetooth_sink(sink),
            "hasConnectedAudioDevice": bool(audio_devices),
            "timestamp": utc_timestamp(),
        }


def _failed_snapshot(error: Exception) -> dict:
    return {
        "serviceActive": False,
        "connectedDevices": [],
        "audioDevices": [],
        "currentAudioSink": UNKNOWN_SINK,
        "isBluetoothAudio": False,
        "hasConnectedAudioDevice": False,
        "timestamp": utc_timestamp(),
        "error": str(error),
    }

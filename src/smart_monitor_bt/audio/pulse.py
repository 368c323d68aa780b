"""PulseAudio default-sink routing for Bluetooth A2DP devices.

When BlueZ connects an A2DP device, PulseAudio's module-bluez5-discover
automatically creates a sink named like:
    bluez_sink.XX_XX_XX_XX_XX_XX.a2dp_sink

Switching the default sink is tried through ``pacmd`` first (legacy
PulseAudio CLI) and then over the native protocol, which also works
against PipeWire's pulse server where ``pacmd`` does not exist.
"""

import asyncio
import logging

from pulsectl import PulseError
from pulsectl_asyncio import PulseAsync

from ..errors import AudioRoutingFailed, ToolReportedFailure, ToolTimeout
from ..process import CommandRunner

logger = logging.getLogger(__name__)

PULSE_CLIENT_NAME = "smart-monitor-bt"
DEFAULT_SINK = "@DEFAULT_SINK@"
DEFAULT_BUILTIN_SINK = "alsa_output.platform-bcm2835_audio.analog-mono"

# pacmd exits 0 for some of these, so the text decides.
_PACMD_FAILURE_MARKERS = (
    "does not exist",
    "No PulseAudio daemon running",
    "No sink found",
    "Failed",
)


class AudioRouter:
    """Controls which sink is the audio server's default output."""

    def __init__(
        self,
        runner: CommandRunner,
        pacmd_path: str = "pacmd",
        pactl_path: str = "pactl",
        builtin_sink: str = DEFAULT_BUILTIN_SINK,
        timeout: float = 5.0,
    ):
        self._runner = runner
        self._pacmd_path = pacmd_path
        self._pactl_path = pactl_path
        self.builtin_sink = builtin_sink
        self._timeout = timeout

    @staticmethod
    def sink_name_for(device_id: str) -> str:
        """Name of the A2DP sink PulseAudio creates for *device_id*."""
        return f"bluez_sink.{device_id.replace(':', '_')}.a2dp_sink"

    @staticmethod
    def is_bluetooth_sink(name: str | None) -> bool:
        return bool(name) and "bluez_sink" in name

    async def _native(self, action: str, fn):
        """Run *fn(pulse)* on a short-lived native-protocol connection."""

        async def go():
            async with PulseAsync(PULSE_CLIENT_NAME) as pulse:
                return await fn(pulse)

        try:
            return await asyncio.wait_for(go(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise ToolTimeout(f"pulse {action}", self._timeout) from None
        except PulseError as e:
            raise ToolReportedFailure(f"pulse {action}", str(e) or type(e).__name__) from e

    async def _pacmd_set_default(self, sink_name: str) -> None:
        result = await self._runner.run(
            self._pacmd_path, "set-default-sink", sink_name, timeout=self._timeout
        )
        failure = next(
            (m for m in _PACMD_FAILURE_MARKERS if m in result.output), None
        )
        if not result.ok or failure:
            raise ToolReportedFailure(
                result.command,
                result.output or f"exit status {result.returncode}",
                result.returncode,
            )

    async def set_default_sink(self, sink_name: str) -> None:
        """Make *sink_name* the default output.

        Raises :class:`AudioRoutingFailed` only if every mechanism failed.
        """
        reasons: list[str] = []
        try:
            await self._pacmd_set_default(sink_name)
            logger.info("Default audio output set to %s (pacmd)", sink_name)
            return
        except (ToolReportedFailure, ToolTimeout) as e:
            logger.debug("pacmd could not set default sink: %s", e)
            reasons.append(f"pacmd: {e}")

        try:
            await self._native(
                "set-default-sink", lambda pulse: pulse.sink_default_set(sink_name)
            )
            logger.info("Default audio output set to %s (native protocol)", sink_name)
            return
        except (ToolReportedFailure, ToolTimeout) as e:
            reasons.append(f"native: {e}")

        raise AudioRoutingFailed(sink_name, reasons)

    async def reset_to_builtin_output(self) -> None:
        """Route audio back to the on-board analog output."""
        await self.set_default_sink(self.builtin_sink)

    async def _pactl(self, *args: str) -> None:
        result = await self._runner.run(self._pactl_path, *args, timeout=self._timeout)
        if not result.ok:
            raise ToolReportedFailure(
                result.command,
                result.output or f"exit status {result.returncode}",
                result.returncode,
            )

    async def set_volume(self, sink_name: str | None, percent: int) -> int:
        """Set sink volume (0-100%); ``None`` targets the default sink."""
        level = max(0, min(100, int(percent)))
        await self._pactl("set-sink-volume", sink_name or DEFAULT_SINK, f"{level}%")
        logger.info("Sink volume set: %s -> %d%%", sink_name or DEFAULT_SINK, level)
        return level

    async def set_mute(self, sink_name: str | None, muted: bool) -> None:
        await self._pactl("set-sink-mute", sink_name or DEFAULT_SINK, "1" if muted else "0")
        logger.info("Sink mute set: %s -> %s", sink_name or DEFAULT_SINK, muted)

    async def get_default_sink_name(self) -> str:
        async def query(pulse):
            info = await pulse.server_info()
            return info.default_sink_name

        return await self._native("server-info", query)

    async def get_volume_and_mute(self, sink_name: str | None = None) -> tuple[int, bool]:
        """Return (volume_pct, muted) of *sink_name* or the default sink."""

        async def query(pulse):
            name = sink_name
            if name is None:
                name = (await pulse.server_info()).default_sink_name
            sink = await pulse.get_sink_by_name(name)
            return round(sink.volume.value_flat * 100), bool(sink.mute)

        return await self._native("sink-info", query)

    async def list_sink_names(self) -> list[str]:
        async def query(pulse):
            return [sink.name for sink in await pulse.sink_list()]

        return await self._native("list-sinks", query)

"""Data types shared by the control-plane, audio and HTTP layers."""

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .errors import InvalidDeviceIdentifier

# Strict Bluetooth MAC address pattern (AA:BB:CC:DD:EE:FF)
MAC_RE = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")

UNKNOWN_DEVICE_NAME = "Unknown Device"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_device_address(value: object) -> bool:
    return isinstance(value, str) and MAC_RE.match(value) is not None


def validate_device_id(value: object) -> str:
    """Return *value* unchanged if it is address-shaped, else raise."""
    if not is_device_address(value):
        raise InvalidDeviceIdentifier(value)
    return value


@dataclass
class BluetoothDevice:
    """A device as reported by one enumeration of the control tool."""

    id: str
    name: str = UNKNOWN_DEVICE_NAME
    paired: bool = False
    connected: bool = False
    is_audio_device: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name or UNKNOWN_DEVICE_NAME,
            "mac": self.id,
            "connected": self.connected,
            "paired": self.paired,
            "isAudioDevice": self.is_audio_device,
        }


@dataclass
class DeviceInfo:
    """Parsed ``bluetoothctl info`` block for one device."""

    address: str
    name: str | None = None
    alias: str | None = None
    icon: str | None = None
    paired: bool = False
    trusted: bool = False
    connected: bool = False
    uuids: list[str] = field(default_factory=list)
    is_audio_device: bool = False
    raw: str = ""

    @property
    def display_name(self) -> str:
        return self.alias or self.name or UNKNOWN_DEVICE_NAME

    def to_device(self) -> BluetoothDevice:
        return BluetoothDevice(
            id=self.address,
            name=self.display_name,
            paired=self.paired,
            connected=self.connected,
            is_audio_device=self.is_audio_device,
        )


@dataclass
class AudioSink:
    """A sink known to the audio server."""

    name: str
    volume: int = 0
    muted: bool = False


class StepStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED_NON_FATAL = "failed_non_fatal"
    FAILED_FATAL = "failed_fatal"


@dataclass
class Step:
    """Outcome of one step of a connection attempt."""

    name: str
    status: StepStatus
    reason: str | None = None
    error: Exception | None = field(default=None, repr=False, compare=False)

    @property
    def failed(self) -> bool:
        return self.status in (StepStatus.FAILED_NON_FATAL, StepStatus.FAILED_FATAL)

    def to_dict(self) -> dict:
        data = {"step": self.name, "status": self.status.value}
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class ConnectionAttempt:
    """Ordered step log and composite result of one connect request."""

    device_id: str
    device_name: str
    steps: list[Step] = field(default_factory=list)
    connected: bool = False
    audio_routed: bool = False
    was_reconnected: bool = False
    sink_name: str | None = None
    timestamp: str = field(default_factory=utc_timestamp)

    def record(
        self,
        name: str,
        status: StepStatus,
        reason: str | None = None,
        error: Exception | None = None,
    ) -> Step:
        step = Step(name, status, reason, error)
        self.steps.append(step)
        return step

    def step(self, name: str) -> Step | None:
        return next((s for s in self.steps if s.name == name), None)

    @property
    def fatal_step(self) -> Step | None:
        return next(
            (s for s in self.steps if s.status is StepStatus.FAILED_FATAL), None
        )

    @property
    def summary(self) -> str:
        if not self.connected:
            return "not connected"
        if not self.audio_routed:
            return "connected, audio not routed"
        return "connected and audio routed"

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "connected": self.connected,
            "audioRouted": self.audio_routed,
            # Older frontends read audioSetSuccess
            "audioSetSuccess": self.audio_routed,
            "wasReconnected": self.was_reconnected,
            "audioSink": self.sink_name,
            "result": self.summary,
            "steps": [s.to_dict() for s in self.steps],
            "timestamp": self.timestamp,
        }


@dataclass
class OrchestratorState:
    """Mutable state of the manager, owned by the web application."""

    active_device_id: str | None = None
    active_sink: str | None = None
    last_attempt: ConnectionAttempt | None = None
    scanning: bool = False
    service_reachable: bool | None = None
    service_checked_at: str | None = None

    def clear_active(self) -> None:
        self.active_device_id = None
        self.active_sink = None

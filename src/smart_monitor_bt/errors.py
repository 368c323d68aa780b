"""Exception types raised by the Bluetooth audio service."""


class BluetoothAudioError(Exception):
    """Base class for every failure the service reports to its callers."""


class ToolTimeout(BluetoothAudioError):
    """Raised when an external command exceeds its deadline."""

    def __init__(self, command: str, timeout: float):
        super().__init__(f"'{command}' timed out after {timeout:g}s")
        self.command = command
        self.timeout = timeout


class ToolReportedFailure(BluetoothAudioError):
    """Raised when an external command exits non-zero or prints a failure line."""

    def __init__(self, command: str, detail: str, returncode: int | None = None):
        super().__init__(f"'{command}' failed: {detail}")
        self.command = command
        self.detail = detail
        self.returncode = returncode


class ParseError(BluetoothAudioError):
    """Raised when tool output does not have the expected shape."""


class AudioRoutingFailed(BluetoothAudioError):
    """Raised when every default-sink mechanism failed."""

    def __init__(self, sink_name: str, reasons: list[str]):
        super().__init__(
            f"Could not set default sink {sink_name}: " + "; ".join(reasons)
        )
        self.sink_name = sink_name
        self.reasons = reasons


class InvalidDeviceIdentifier(BluetoothAudioError):
    """Raised for a device id that is not a Bluetooth address."""

    def __init__(self, device_id: object):
        super().__init__(
            f"Invalid device identifier {device_id!r} "
            "(expected XX:XX:XX:XX:XX:XX)"
        )
        self.device_id = device_id


class ServiceUnavailable(BluetoothAudioError):
    """Raised when the Bluetooth system service cannot be reached or started."""

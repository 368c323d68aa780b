"""Constants for talking to bluetoothctl and the bluetooth systemd unit."""

# Advanced Audio Distribution Profile (A2DP) sink
A2DP_SINK_UUID = "0000110b-0000-1000-8000-00805f9b34fb"

# Hands-Free Profile (HFP) / Headset Profile (HSP)
HFP_UUID = "0000111e-0000-1000-8000-00805f9b34fb"
HSP_UUID = "00001108-0000-1000-8000-00805f9b34fb"

# Substrings of a ``bluetoothctl info`` dump that mark a device as able to
# play audio.  Matched case-sensitively against the raw block.
AUDIO_MARKERS = (
    "Audio Sink",
    "A2DP",
    "audio",
    A2DP_SINK_UUID,
    HFP_UUID,
    HSP_UUID,
)

# Lines bluetoothctl prints when a command did not do what was asked.
# Older releases exit 0 even on failure, so the text is authoritative.
FAILURE_MARKERS = (
    "Failed to",
    "org.bluez.Error",
    "not available",
    "No default controller available",
)

# Pairing an already-paired device fails with this; it is not an error for us.
ALREADY_PAIRED_MARKERS = (
    "AlreadyExists",
    "Already Exists",
)

DEVICE_LINE_PREFIX = "Device "
UNKNOWN_LIST_NAME = "Unknown"

# systemd over the system D-Bus
SYSTEMD_SERVICE = "org.freedesktop.systemd1"
SYSTEMD_PATH = "/org/freedesktop/systemd1"
SYSTEMD_MANAGER_INTERFACE = "org.freedesktop.systemd1.Manager"
SYSTEMD_UNIT_INTERFACE = "org.freedesktop.systemd1.Unit"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
DEFAULT_BLUETOOTH_UNIT = "bluetooth.service"

"""Parsers for bluetoothctl's human-oriented text output.

bluetoothctl has no machine-readable mode, so everything here is line and
substring matching.  Keep all knowledge of the output format in this
module; callers only see :class:`BluetoothDevice` and :class:`DeviceInfo`.

Example ``bluetoothctl devices`` output::

    Device AA:BB:CC:DD:EE:FF Headphones
    Device 11:22:33:44:55:66

Example ``bluetoothctl info AA:BB:CC:DD:EE:FF`` output::

    Device AA:BB:CC:DD:EE:FF (public)
        Name: Headphones
        Alias: Headphones
        Icon: audio-headset
        Paired: yes
        Trusted: yes
        Connected: yes
        UUID: Audio Sink                (0000110b-0000-1000-8000-00805f9b34fb)
"""

import re

from ..errors import ParseError
from ..models import BluetoothDevice, DeviceInfo
from .constants import (
    ALREADY_PAIRED_MARKERS,
    AUDIO_MARKERS,
    DEVICE_LINE_PREFIX,
    FAILURE_MARKERS,
    UNKNOWN_LIST_NAME,
)

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]|\x01|\x02")
_UUID_RE = re.compile(r"^(?P<label>.*?)\s*\((?P<uuid>[0-9a-fA-F-]{36})\)$")


def clean_output(text: str) -> list[str]:
    """Strip colour codes and blank lines, returning trimmed lines."""
    text = _ANSI_RE.sub("", text or "")
    return [line.strip() for line in text.splitlines() if line.strip()]


def find_failure(text: str) -> str | None:
    """Return the first line that reports a failure, if any."""
    for line in clean_output(text):
        if any(marker in line for marker in FAILURE_MARKERS):
            return line
    return None


def is_already_paired(text: str) -> bool:
    return any(marker in (text or "") for marker in ALREADY_PAIRED_MARKERS)


def parse_device_list(text: str) -> list[BluetoothDevice]:
    """Parse ``bluetoothctl devices`` into one record per ``Device`` line.

    Lines that are not device lines (agent chatter, prompts) are ignored.
    A device without a name gets the literal name ``Unknown``.  Duplicate
    addresses keep their first occurrence.
    """
    devices: list[BluetoothDevice] = []
    seen: set[str] = set()
    for line in clean_output(text):
        if not line.startswith(DEVICE_LINE_PREFIX):
            continue
        parts = line.split(" ", 2)
        if len(parts) < 2 or not parts[1]:
            continue
        address = parts[1].strip()
        if address in seen:
            continue
        seen.add(address)
        name = parts[2].strip() if len(parts) == 3 else ""
        devices.append(BluetoothDevice(id=address, name=name or UNKNOWN_LIST_NAME))
    return devices


def _yes(value: str) -> bool:
    return value.strip().lower() == "yes"


def parse_device_info(address: str, text: str) -> DeviceInfo:
    """Parse a ``bluetoothctl info`` block.

    Raises :class:`ParseError` when the tool says the device is unknown or
    when the block has neither a ``Device`` header nor a ``Connected:``
    line.
    """
    lines = clean_output(text)
    for line in lines:
        if line.startswith(DEVICE_LINE_PREFIX) and line.endswith("not available"):
            raise ParseError(f"Device {address} not available")

    has_header = any(line.startswith(DEVICE_LINE_PREFIX) for line in lines)
    has_state = any(line.startswith("Connected:") for line in lines)
    if not has_header and not has_state:
        raise ParseError(f"Unrecognised info output for {address}: {text[:120]!r}")

    info = DeviceInfo(address=address, raw=text)
    for line in lines:
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if key == "Name":
            info.name = value or None
        elif key == "Alias":
            info.alias = value or None
        elif key == "Icon":
            info.icon = value or None
        elif key == "Paired":
            info.paired = _yes(value)
        elif key == "Trusted":
            info.trusted = _yes(value)
        elif key == "Connected":
            info.connected = _yes(value)
        elif key == "UUID":
            m = _UUID_RE.match(value)
            info.uuids.append(m.group("label").strip() if m else value)

    info.is_audio_device = is_audio_capable(text)
    return info


def is_audio_capable(text: str) -> bool:
    """Substring check for audio profiles in a raw info dump."""
    return any(marker in (text or "") for marker in AUDIO_MARKERS)

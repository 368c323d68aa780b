"""Tests for parsing bluetoothctl output."""

import unittest

from smart_monitor_bt.bluez.parser import (
    clean_output,
    find_failure,
    is_already_paired,
    parse_device_info,
    parse_device_list,
)
from smart_monitor_bt.errors import ParseError

INFO_CONNECTED = """\
Device AA:BB:CC:DD:EE:FF (public)
\tName: JBL Flip 5
\tAlias: Kitchen speaker
\tClass: 0x00240414
\tIcon: audio-card
\tPaired: yes
\tTrusted: yes
\tBlocked: no
\tConnected: yes
\tUUID: Audio Sink                (0000110b-0000-1000-8000-00805f9b34fb)
\tUUID: A/V Remote Control        (0000110e-0000-1000-8000-00805f9b34fb)
"""

INFO_KEYBOARD = """\
Device 11:22:33:44:55:66 (public)
\tName: Keyboard K380
\tIcon: input-keyboard
\tPaired: yes
\tTrusted: no
\tConnected: no
\tUUID: Human Interface Device... (00001124-0000-1000-8000-00805f9b34fb)
"""


class DeviceListTest(unittest.TestCase):
    def test_parses_device_lines_and_ignores_chatter(self) -> None:
        text = (
            "Agent registered\n"
            "Device AA:BB:CC:DD:EE:FF JBL Flip 5\n"
            "[CHG] Controller 00:11:22:33:44:55 Discovering: yes\n"
            "Device 11:22:33:44:55:66 Keyboard K380\n"
        )
        devices = parse_device_list(text)
        self.assertEqual(
            [(d.id, d.name) for d in devices],
            [("AA:BB:CC:DD:EE:FF", "JBL Flip 5"), ("11:22:33:44:55:66", "Keyboard K380")],
        )

    def test_missing_name_is_unknown(self) -> None:
        devices = parse_device_list("Device AA:BB:CC:DD:EE:FF\n")
        self.assertEqual(devices[0].name, "Unknown")

    def test_duplicate_addresses_keep_first(self) -> None:
        devices = parse_device_list(
            "Device AA:BB:CC:DD:EE:FF First\nDevice AA:BB:CC:DD:EE:FF Second\n"
        )
        self.assertEqual(len(devices), 1)
        self.assertEqual(devices[0].name, "First")

    def test_strips_colour_codes(self) -> None:
        text = "\x1b[0;94m[bluetooth]\x1b[0m# \nDevice AA:BB:CC:DD:EE:FF Speaker\x1b[0m\n"
        self.assertEqual(parse_device_list(text)[0].name, "Speaker")

    def test_empty_output(self) -> None:
        self.assertEqual(parse_device_list(""), [])


class DeviceInfoTest(unittest.TestCase):
    def test_connected_audio_device(self) -> None:
        info = parse_device_info("AA:BB:CC:DD:EE:FF", INFO_CONNECTED)
        self.assertTrue(info.connected)
        self.assertTrue(info.paired)
        self.assertTrue(info.trusted)
        self.assertTrue(info.is_audio_device)
        self.assertEqual(info.name, "JBL Flip 5")
        self.assertEqual(info.display_name, "Kitchen speaker")
        self.assertEqual(info.uuids, ["Audio Sink", "A/V Remote Control"])

    def test_non_audio_device(self) -> None:
        info = parse_device_info("11:22:33:44:55:66", INFO_KEYBOARD)
        self.assertFalse(info.connected)
        self.assertFalse(info.is_audio_device)
        self.assertEqual(info.display_name, "Keyboard K380")

    def test_unknown_device_raises_parse_error(self) -> None:
        with self.assertRaises(ParseError):
            parse_device_info("AA:BB:CC:DD:EE:FF", "Device AA:BB:CC:DD:EE:FF not available\n")

    def test_unrecognised_output_raises_parse_error(self) -> None:
        with self.assertRaises(ParseError):
            parse_device_info("AA:BB:CC:DD:EE:FF", "Waiting to connect to bluetoothd...")

    def test_device_named_not_available_still_parses(self) -> None:
        text = INFO_KEYBOARD.replace("Keyboard K380", "Printer not available")
        info = parse_device_info("11:22:33:44:55:66", text)
        self.assertEqual(info.name, "Printer not available")

    def test_to_device(self) -> None:
        device = parse_device_info("AA:BB:CC:DD:EE:FF", INFO_CONNECTED).to_device()
        self.assertEqual(
            device.to_dict(),
            {
                "id": "AA:BB:CC:DD:EE:FF",
                "name": "Kitchen speaker",
                "mac": "AA:BB:CC:DD:EE:FF",
                "connected": True,
                "paired": True,
                "isAudioDevice": True,
            },
        )


class FailureDetectionTest(unittest.TestCase):
    def test_failure_lines(self) -> None:
        self.assertEqual(
            find_failure("Attempting to connect to AA:BB:CC:DD:EE:FF\nFailed to connect: org.bluez.Error.Failed"),
            "Failed to connect: org.bluez.Error.Failed",
        )
        self.assertIsNone(find_failure("Attempting to connect\nConnection successful"))
        self.assertEqual(
            find_failure("No default controller available"), "No default controller available"
        )

    def test_already_paired(self) -> None:
        self.assertTrue(is_already_paired("Failed to pair: org.bluez.Error.AlreadyExists"))
        self.assertFalse(is_already_paired("Pairing successful"))

    def test_clean_output_drops_blank_lines(self) -> None:
        self.assertEqual(clean_output("  a \n\n b\n"), ["a", "b"])


if __name__ == "__main__":
    unittest.main()

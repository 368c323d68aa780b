"""Tests for default-sink routing, volume and mute."""

import itertools
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from pulsectl import PulseError

from smart_monitor_bt.audio.pulse import AudioRouter
from smart_monitor_bt.audio.tone import ConfirmationTone
from smart_monitor_bt.errors import AudioRoutingFailed, ToolReportedFailure

from tests.fakes import BUILTIN, FakeRunner, result

BT_SINK = "bluez_sink.AA_BB_CC_DD_EE_FF.a2dp_sink"


class FakePulse:
    """Async-context PulseAsync replacement with class-level state."""

    default_sink = BUILTIN
    sinks = {BUILTIN: (0.5, 0), BT_SINK: (0.42, 1)}
    fail_default_set = False
    default_set_calls: list = []

    def __init__(self, client_name: str) -> None:
        self.client_name = client_name

    async def __aenter__(self) -> "FakePulse":
        return self

    async def __aexit__(self, *exc) -> bool:
        return False

    async def sink_default_set(self, name: str) -> None:
        FakePulse.default_set_calls.append(name)
        if FakePulse.fail_default_set:
            raise PulseError("No such entity")
        FakePulse.default_sink = name

    async def server_info(self):
        return SimpleNamespace(default_sink_name=FakePulse.default_sink)

    async def get_sink_by_name(self, name: str):
        volume, mute = FakePulse.sinks[name]
        return SimpleNamespace(name=name, volume=SimpleNamespace(value_flat=volume), mute=mute)

    async def sink_list(self):
        return [SimpleNamespace(name=name) for name in FakePulse.sinks]


class SinkNameTest(unittest.TestCase):
    def test_sink_name_for_address(self) -> None:
        self.assertEqual(AudioRouter.sink_name_for("AA:BB:CC:DD:EE:FF"), BT_SINK)
        self.assertEqual(
            AudioRouter.sink_name_for("AA:BB:CC:DD:EE:FF"),
            AudioRouter.sink_name_for("AA:BB:CC:DD:EE:FF"),
        )

    def test_distinct_addresses_give_distinct_sinks(self) -> None:
        addresses = [
            ":".join(f"{b:02X}" for b in (0xAA, 0xBB, 0xCC, 0xDD, x, y))
            for x, y in itertools.product(range(0, 256, 51), repeat=2)
        ]
        sinks = {AudioRouter.sink_name_for(a) for a in addresses}
        self.assertEqual(len(sinks), len(addresses))

    def test_is_bluetooth_sink(self) -> None:
        self.assertTrue(AudioRouter.is_bluetooth_sink(BT_SINK))
        self.assertFalse(AudioRouter.is_bluetooth_sink(BUILTIN))
        self.assertFalse(AudioRouter.is_bluetooth_sink(None))


class AudioRouterTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        FakePulse.default_sink = BUILTIN
        FakePulse.fail_default_set = False
        FakePulse.default_set_calls = []
        patcher = patch("smart_monitor_bt.audio.pulse.PulseAsync", FakePulse)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _router(self, responses=None) -> tuple[AudioRouter, FakeRunner]:
        runner = FakeRunner(responses)
        return AudioRouter(runner, builtin_sink=BUILTIN), runner

    async def test_pacmd_success_skips_native_protocol(self) -> None:
        router, runner = self._router()
        await router.set_default_sink(BT_SINK)
        self.assertEqual(runner.argvs, [("pacmd", "set-default-sink", BT_SINK)])
        self.assertEqual(FakePulse.default_set_calls, [])

    async def test_falls_back_to_native_protocol(self) -> None:
        router, _ = self._router(
            {("set-default-sink", BT_SINK): f"Sink {BT_SINK} does not exist."}
        )
        await router.set_default_sink(BT_SINK)
        self.assertEqual(FakePulse.default_set_calls, [BT_SINK])
        self.assertEqual(FakePulse.default_sink, BT_SINK)

    async def test_missing_pacmd_falls_back(self) -> None:
        router, _ = self._router(
            {("set-default-sink", BT_SINK): ToolReportedFailure("pacmd", "cannot execute")}
        )
        await router.set_default_sink(BT_SINK)
        self.assertEqual(FakePulse.default_sink, BT_SINK)

    async def test_both_mechanisms_failing_raises(self) -> None:
        FakePulse.fail_default_set = True
        router, _ = self._router(
            {
                ("set-default-sink", BT_SINK): result(
                    "pacmd", "set-default-sink", BT_SINK,
                    stderr="No PulseAudio daemon running", returncode=1,
                )
            }
        )
        with self.assertRaises(AudioRoutingFailed) as cm:
            await router.set_default_sink(BT_SINK)
        self.assertEqual(len(cm.exception.reasons), 2)
        self.assertEqual(cm.exception.sink_name, BT_SINK)

    async def test_reset_routes_to_builtin_output(self) -> None:
        router, runner = self._router()
        await router.reset_to_builtin_output()
        self.assertEqual(runner.argvs, [("pacmd", "set-default-sink", BUILTIN)])

    async def test_set_volume_clamps_and_targets_default_sink(self) -> None:
        router, runner = self._router()
        self.assertEqual(await router.set_volume(None, 140), 100)
        self.assertEqual(await router.set_volume(BT_SINK, -5), 0)
        self.assertEqual(
            runner.argvs,
            [
                ("pactl", "set-sink-volume", "@DEFAULT_SINK@", "100%"),
                ("pactl", "set-sink-volume", BT_SINK, "0%"),
            ],
        )

    async def test_set_mute(self) -> None:
        router, runner = self._router()
        await router.set_mute(None, True)
        self.assertEqual(runner.argvs, [("pactl", "set-sink-mute", "@DEFAULT_SINK@", "1")])

    async def test_pactl_failure_raises(self) -> None:
        router, _ = self._router(
            {
                ("set-sink-mute", "@DEFAULT_SINK@", "0"): result(
                    "pactl", "set-sink-mute", "@DEFAULT_SINK@", "0",
                    stderr="Connection failure", returncode=1,
                )
            }
        )
        with self.assertRaises(ToolReportedFailure):
            await router.set_mute(None, False)

    async def test_queries_over_native_protocol(self) -> None:
        FakePulse.default_sink = BT_SINK
        router, _ = self._router()
        self.assertEqual(await router.get_default_sink_name(), BT_SINK)
        self.assertEqual(await router.get_volume_and_mute(), (42, True))
        self.assertEqual(await router.get_volume_and_mute(BUILTIN), (50, False))
        self.assertEqual(await router.list_sink_names(), [BUILTIN, BT_SINK])


class ConfirmationToneTest(unittest.IsolatedAsyncioTestCase):
    async def test_plays_with_configured_player(self) -> None:
        runner = FakeRunner()
        tone = ConfirmationTone(runner, "/opt/sounds/connected.mp3")
        self.assertTrue(tone.configured)
        await tone.play()
        self.assertEqual(runner.argvs, [("mpg123", "-q", "/opt/sounds/connected.mp3")])

    async def test_unconfigured(self) -> None:
        self.assertFalse(ConfirmationTone(FakeRunner(), None).configured)

    async def test_player_failure_raises(self) -> None:
        runner = FakeRunner(
            {("-q", "x.mp3"): result("mpg123", "-q", "x.mp3", stderr="cannot open", returncode=1)}
        )
        with self.assertRaises(ToolReportedFailure):
            await ConfirmationTone(runner, "x.mp3").play()


if __name__ == "__main__":
    unittest.main()

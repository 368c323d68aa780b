"""Tests for the readers/writer operation lock."""

import asyncio
import unittest

from smart_monitor_bt.locks import OperationLock


class OperationLockTest(unittest.IsolatedAsyncioTestCase):
    async def test_readers_share_the_lock(self) -> None:
        lock = OperationLock("test")
        inside = 0
        peak = 0

        async def reader() -> None:
            nonlocal inside, peak
            async with lock.read():
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(*(reader() for _ in range(3)))
        self.assertEqual(peak, 3)

    async def test_writers_are_exclusive(self) -> None:
        lock = OperationLock("test")
        events = []

        async def writer(name: str) -> None:
            async with lock.write(name):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(writer("a"), writer("b"))
        self.assertEqual(events, ["a-in", "a-out", "b-in", "b-out"])

    async def test_waiting_writer_blocks_new_readers(self) -> None:
        lock = OperationLock("test")
        events = []
        first_reader_in = asyncio.Event()

        async def first_reader() -> None:
            async with lock.read():
                first_reader_in.set()
                await asyncio.sleep(0.02)
                events.append("reader1-out")

        async def writer() -> None:
            await first_reader_in.wait()
            async with lock.write("connect"):
                self.assertTrue(lock.busy)
                self.assertEqual(lock.holder, "connect")
                events.append("writer")

        async def late_reader() -> None:
            await first_reader_in.wait()
            await asyncio.sleep(0.005)
            async with lock.read():
                events.append("reader2")

        await asyncio.gather(first_reader(), writer(), late_reader())
        self.assertEqual(events, ["reader1-out", "writer", "reader2"])
        self.assertFalse(lock.busy)

    async def test_cancelled_writer_releases_readers(self) -> None:
        lock = OperationLock("test")
        reader_done = asyncio.Event()

        async def holder() -> None:
            async with lock.read():
                await asyncio.sleep(0.05)

        hold = asyncio.create_task(holder())
        await asyncio.sleep(0)
        waiting_writer = asyncio.create_task(self._write(lock))
        await asyncio.sleep(0.01)
        waiting_writer.cancel()

        async def reader() -> None:
            async with lock.read():
                reader_done.set()

        await asyncio.wait_for(reader(), timeout=0.04)
        self.assertTrue(reader_done.is_set())
        await hold

    async def _write(self, lock: OperationLock) -> None:
        async with lock.write():
            pass


if __name__ == "__main__":
    unittest.main()

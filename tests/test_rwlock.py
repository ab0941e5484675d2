from __future__ import annotations

import asyncio
import unittest

from meetings.rwlock import AsyncRWLock


class AsyncRWLockTests(unittest.IsolatedAsyncioTestCase):
    async def test_readers_share_the_lock(self):
        lock = AsyncRWLock()
        inside = 0
        peak = 0

        async def reader():
            nonlocal inside, peak
            async with lock.read():
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(*(reader() for _ in range(3)))
        self.assertEqual(peak, 3)

    async def test_writer_excludes_readers_and_waiting_writer_blocks_new_readers(self):
        lock = AsyncRWLock()
        order: list[str] = []
        release_reader = asyncio.Event()

        async def first_reader():
            async with lock.read():
                order.append("r1")
                await release_reader.wait()
            order.append("r1 done")

        async def writer():
            async with lock.write():
                order.append("w")

        async def late_reader():
            async with lock.read():
                order.append("r2")

        t1 = asyncio.create_task(first_reader())
        await asyncio.sleep(0)
        t2 = asyncio.create_task(writer())
        await asyncio.sleep(0)
        t3 = asyncio.create_task(late_reader())
        await asyncio.sleep(0.01)
        self.assertEqual(order, ["r1"])

        release_reader.set()
        await asyncio.gather(t1, t2, t3)
        self.assertEqual(order, ["r1", "r1 done", "w", "r2"])

    async def test_cancelled_waiting_writer_releases_readers(self):
        lock = AsyncRWLock()
        release = asyncio.Event()

        async def holder():
            async with lock.read():
                await release.wait()

        async def writer():
            async with lock.write():
                pass

        hold = asyncio.create_task(holder())
        await asyncio.sleep(0)
        waiting_writer = asyncio.create_task(writer())
        await asyncio.sleep(0)
        waiting_writer.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await waiting_writer

        async with lock.read():
            pass
        release.set()
        await hold


if __name__ == "__main__":
    unittest.main()

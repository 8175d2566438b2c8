"""
Recurring task tests

1. A failing tick is logged and the loop keeps going
2. `running` follows start/cancel
3. Starting twice keeps a single loop
"""

import asyncio
import logging

from chatclient.scheduler import RecurringTask


class TestRecurringTask:
    def test_failed_tick_does_not_stop_loop(self, caplog):
        calls = []

        async def tick():
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("relay hiccup")

        async def run():
            task = RecurringTask(tick, 0.01, name="poll:test")
            task.start()
            for _ in range(200):
                if len(calls) >= 3:
                    break
                await asyncio.sleep(0.01)
            await task.cancel()

        with caplog.at_level(logging.ERROR, logger="chatclient.scheduler"):
            asyncio.run(run())
        assert len(calls) >= 3
        assert "poll:test tick failed" in caplog.text

    def test_running_follows_cancel(self):
        async def tick():
            pass

        async def run():
            task = RecurringTask(tick, 3600)
            assert not task.running
            task.start()
            assert task.running
            await task.cancel()
            assert not task.running
            # cancelling again is harmless
            await task.cancel()
            assert not task.running

        asyncio.run(run())

    def test_start_is_idempotent(self):
        calls = []

        async def tick():
            calls.append(1)

        async def run():
            task = RecurringTask(tick, 0.05)
            task.start()
            first = task._task
            task.start()
            assert task._task is first
            await asyncio.sleep(0.12)
            await task.cancel()

        asyncio.run(run())
        # a duplicated loop would have ticked about twice as often
        assert 1 <= len(calls) <= 3

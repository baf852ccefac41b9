"""
Unit tests for ReconnectScheduler
"""

import asyncio

import pytest

from whatsapp_bridge.core.scheduler import ReconnectScheduler


class GenerationCounter:
    def __init__(self):
        self.value = 1

    def __call__(self):
        return self.value


class TestReconnectScheduler:
    """Test cases for cancellable reconnect scheduling"""

    @pytest.mark.asyncio
    async def test_runs_callback_after_delay(self):
        generation = GenerationCounter()
        scheduler = ReconnectScheduler(generation)
        calls = []

        async def callback(gen):
            calls.append(gen)

        task = scheduler.schedule(0.01, 1, callback)
        assert scheduler.pending
        await task

        assert calls == [1]
        assert not scheduler.pending

    @pytest.mark.asyncio
    async def test_cancel_prevents_callback(self):
        scheduler = ReconnectScheduler(GenerationCounter())
        calls = []

        async def callback(gen):
            calls.append(gen)

        scheduler.schedule(0.01, 1, callback)
        scheduler.cancel()
        await asyncio.sleep(0.05)

        assert calls == []
        assert not scheduler.pending

    @pytest.mark.asyncio
    async def test_stale_generation_is_dropped(self):
        generation = GenerationCounter()
        scheduler = ReconnectScheduler(generation)
        calls = []

        async def callback(gen):
            calls.append(gen)

        task = scheduler.schedule(0.01, 1, callback)
        generation.value = 2
        assert not scheduler.pending
        await task

        assert calls == []

    @pytest.mark.asyncio
    async def test_schedule_replaces_pending_retry(self):
        scheduler = ReconnectScheduler(GenerationCounter())
        calls = []

        async def callback(gen):
            calls.append(gen)

        first = scheduler.schedule(0.01, 1, callback)
        second = scheduler.schedule(0.01, 1, callback)
        await asyncio.sleep(0.05)

        assert first.cancelled()
        assert second.done()
        assert calls == [1]


if __name__ == "__main__":
    pytest.main([__file__])

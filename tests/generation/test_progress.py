"""Tests for the progress curve and ticker."""

from __future__ import annotations

import asyncio
import random

import pytest

from pictora.generation.models import Task, TaskStatus
from pictora.generation.progress import ProgressTicker, next_progress
from pictora.generation.store import TaskStore


class TestNextProgress:
    def test_phases_are_front_loaded(self):
        rng = random.Random(7)
        assert 15 <= next_progress(10, rng) <= 23
        assert 43 <= next_progress(40, rng) <= 48
        assert 80 <= next_progress(79, rng) <= 83
        assert 90 <= next_progress(90, rng) <= 92

    def test_never_decreases_never_passes_ceiling(self):
        rng = random.Random(1)
        value = 10
        for _ in range(200):
            new_value = next_progress(value, rng)
            assert new_value >= value
            assert new_value <= 95
            value = new_value
        assert value == 95

    def test_custom_ceiling(self):
        assert next_progress(60, random.Random(3), ceiling=62) <= 62

    def test_value_above_ceiling_is_kept(self):
        assert next_progress(97, random.Random(3)) == 97


class TestProgressTicker:
    @pytest.mark.asyncio
    async def test_tick_advances_processing_task(self):
        store = TaskStore()
        await store.create(Task(id="t1", status=TaskStatus.PROCESSING, progress=10))
        ticker = ProgressTicker(store, "t1", rng=random.Random(2))

        task = await ticker.tick()
        assert task.progress > 10

    @pytest.mark.asyncio
    async def test_tick_is_noop_once_terminal(self):
        store = TaskStore()
        await store.create(Task(id="t1", status=TaskStatus.PROCESSING, progress=40))
        await store.fail("t1", "boom")
        ticker = ProgressTicker(store, "t1")

        assert await ticker.tick() is None
        task = await store.get("t1")
        assert task.progress == 100
        assert task.status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_background_ticker_stops_itself_on_terminal(self):
        store = TaskStore()
        await store.create(Task(id="t1", status=TaskStatus.PROCESSING, progress=10))
        seen: list[int] = []

        async def on_tick(task: Task) -> None:
            seen.append(task.progress)

        ticker = ProgressTicker(store, "t1", interval=0.01, on_tick=on_tick)
        ticker.start()
        await asyncio.sleep(0.08)
        await store.fail("t1", "done")
        await asyncio.sleep(0.05)

        assert not ticker.running
        assert seen == sorted(seen)
        assert all(value <= 95 for value in seen)
        await ticker.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_promptly(self):
        store = TaskStore()
        await store.create(Task(id="t1", status=TaskStatus.PROCESSING, progress=10))
        ticker = ProgressTicker(store, "t1", interval=60)
        ticker.start()
        assert ticker.running

        await asyncio.wait_for(ticker.stop(), timeout=1)
        assert not ticker.running
        assert (await store.get("t1")).progress == 10

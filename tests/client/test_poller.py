"""Tests for TaskPoller."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pictora.client.api import ApiError
from pictora.client.poller import PollError, PollState, TaskPoller
from pictora.generation.models import TaskStatus


def _status(status: str, progress: int = 0, images=None, error=None) -> dict:
    return {
        "taskId": "t1",
        "status": status,
        "progress": progress,
        "result": {"images": images} if images is not None else None,
        "error": error,
        "logs": [f"{status} {progress}"],
    }


def _client(*responses) -> MagicMock:
    client = MagicMock()
    client.get_task_status = AsyncMock(side_effect=list(responses))
    return client


class TestPollState:
    def test_completed_forces_full_progress_and_filters_images(self):
        state = PollState.from_status(
            "t1", _status("completed", 80, images=["https://x.test/a.png", "", None, 3])
        )
        assert state.is_terminal
        assert state.progress == 100
        assert state.images == ["https://x.test/a.png"]

    def test_failed_without_error_gets_default(self):
        state = PollState.from_status("t1", _status("failed", 40))
        assert state.status == TaskStatus.FAILED
        assert state.progress == 100
        assert state.error == "Generation failed"

    def test_unknown_status_treated_as_pending(self):
        state = PollState.from_status("t1", {"status": "queued"})
        assert state.status == TaskStatus.PENDING
        assert not state.is_terminal


class TestTaskPoller:
    @pytest.mark.asyncio
    async def test_polls_until_completed(self):
        client = _client(
            _status("pending"),
            _status("processing", 30),
            _status("completed", 100, images=["https://x.test/a.png"]),
        )
        updates: list[PollState] = []
        poller = TaskPoller(client, interval=0.01, on_update=updates.append)

        state = await poller.poll("t1")

        assert state.status == TaskStatus.COMPLETED
        assert state.images == ["https://x.test/a.png"]
        assert [u.status for u in updates] == [
            TaskStatus.PENDING,
            TaskStatus.PROCESSING,
            TaskStatus.COMPLETED,
        ]
        # No request after the terminal answer
        assert poller.requests == 3
        assert client.get_task_status.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_task_is_terminal(self):
        client = _client(_status("processing", 50), _status("failed", 50, error="down"))
        poller = TaskPoller(client, interval=0.01)

        state = await poller.poll("t1")

        assert state.status == TaskStatus.FAILED
        assert state.error == "down"

    @pytest.mark.asyncio
    async def test_async_update_callback_is_awaited(self):
        client = _client(_status("completed", 100, images=["https://x.test/a.png"]))
        seen: list[int] = []

        async def on_update(state: PollState) -> None:
            seen.append(state.progress)

        await TaskPoller(client, interval=0.01, on_update=on_update).poll("t1")
        assert seen == [100]

    @pytest.mark.asyncio
    async def test_transient_errors_are_tolerated(self):
        client = _client(
            ApiError("Cannot connect to server"),
            ApiError("GET failed", status_code=502),
            _status("completed", 100, images=["https://x.test/a.png"]),
        )
        poller = TaskPoller(client, interval=0.01, max_transient_errors=2)

        state = await poller.poll("t1")

        assert state.status == TaskStatus.COMPLETED
        assert poller.requests == 3

    @pytest.mark.asyncio
    async def test_too_many_transient_errors_raise(self):
        client = _client(*[ApiError("Request timed out") for _ in range(5)])
        poller = TaskPoller(client, interval=0.01, max_transient_errors=2)

        with pytest.raises(PollError, match="after 3 failed requests"):
            await poller.poll("t1")
        assert poller.requests == 3

    @pytest.mark.asyncio
    async def test_not_found_raises_immediately(self):
        client = _client(ApiError("Task not found", status_code=404, detail="Task not found"))
        poller = TaskPoller(client, interval=0.01)

        with pytest.raises(PollError) as exc_info:
            await poller.poll("t1")

        assert exc_info.value.status_code == 404
        assert poller.requests == 1

    @pytest.mark.asyncio
    async def test_stop_ends_polling_promptly(self):
        client = MagicMock()
        client.get_task_status = AsyncMock(return_value=_status("processing", 20))
        poller = TaskPoller(client, interval=60)

        async with poller:
            run = asyncio.create_task(poller.poll("t1"))
            await asyncio.sleep(0.05)
            poller.stop()
            state = await asyncio.wait_for(run, timeout=1)

        assert state.status == TaskStatus.PROCESSING
        assert poller.requests == 1
        assert poller.stopped

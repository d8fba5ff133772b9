"""Task status routes."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from ...generation import Task, TaskEventBus, TaskStore
from ...generation.events import Event, task_channel
from ..deps import Events, Store
from ..models import TaskStatusData, envelope

router = APIRouter(prefix="/api/task", tags=["tasks"])

HEARTBEAT_INTERVAL = 15.0


def task_not_found() -> JSONResponse:
    return envelope(None, code=404, message="Task not found")


def status_data(task: Task) -> TaskStatusData:
    return TaskStatusData.model_validate(task.status_dict())


async def task_status_response(store: TaskStore, task_id: str) -> JSONResponse:
    """Status envelope for ``task_id``, or the 404 envelope."""
    task = await store.get(task_id)
    if task is None:
        return task_not_found()
    return envelope(status_data(task))


def _format_event(event: Event) -> dict[str, Any]:
    return {"data": json.dumps({"type": event.event_type.value, **event.data})}


async def _task_events(store: TaskStore, events: TaskEventBus, task_id: str):
    """Snapshot first, then live events until the task is terminal."""
    channel = task_channel(task_id)
    queue = await events.subscribe(channel)
    try:
        snapshot = await store.get(task_id)
        if snapshot is None:
            return
        yield {"data": json.dumps({"type": "snapshot", **snapshot.status_dict()})}
        if snapshot.is_terminal:
            return

        progress = snapshot.progress
        while True:
            try:
                event: Event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_INTERVAL)
            except TimeoutError:
                yield {"data": json.dumps({"type": "heartbeat", "timestamp": time.time()})}
                continue
            # Events queued before the snapshot was read may be older than it
            event_progress = event.data.get("progress", progress)
            if not event.event_type.is_terminal and event_progress < progress:
                continue
            progress = max(progress, event_progress)
            yield _format_event(event)
            if event.event_type.is_terminal:
                return
    finally:
        await events.unsubscribe(channel, queue)


@router.get("/{task_id}/status")
async def get_task_status(task_id: str, store: Store):
    return await task_status_response(store, task_id)


@router.get("/{task_id}/events")
async def task_event_stream(task_id: str, store: Store, events: Events):
    """SSE stream of status updates for one task."""
    if await store.get(task_id) is None:
        return task_not_found()
    return EventSourceResponse(_task_events(store, events, task_id))

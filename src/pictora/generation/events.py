"""TaskEventBus - in-memory pub/sub feeding the task event stream."""

from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    TASK_CREATED = "task_created"
    TASK_PROGRESS = "task_progress"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    HEARTBEAT = "heartbeat"

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.TASK_COMPLETED, EventType.TASK_FAILED)


@dataclass
class Event:
    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    channel: str = ""


def task_channel(task_id: str) -> str:
    return f"task:{task_id}"


class TaskEventBus:
    """In-memory pub/sub for task events."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._channels: dict[str, set[asyncio.Queue]] = defaultdict(set)

    async def subscribe(self, channel: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._channels[channel].add(queue)
        return queue

    async def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        self._channels[channel].discard(queue)
        if not self._channels[channel]:
            del self._channels[channel]

    async def publish(self, channel: str, event: Event) -> None:
        for queue in list(self._channels.get(channel, [])):
            with contextlib.suppress(asyncio.QueueFull):
                queue.put_nowait(event)

    async def publish_to_task(self, task_id: str, event: Event) -> None:
        """Convenience: publish to the task:{task_id} channel."""
        event.channel = task_channel(task_id)
        await self.publish(event.channel, event)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

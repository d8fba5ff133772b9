"""TaskPoller - follows a generation task until it finishes."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..generation.models import TaskStatus
from .api import ApiError, GenerationClient

logger = logging.getLogger(__name__)


class PollError(Exception):
    """Raised when polling cannot continue."""

    def __init__(self, message: str, status_code: int = 0, detail: str = ""):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


@dataclass
class PollState:
    """What the poller observed on its latest successful request."""

    task_id: str
    status: TaskStatus
    progress: int = 0
    images: list[str] = field(default_factory=list)
    error: str | None = None
    logs: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_status(cls, task_id: str, data: dict[str, Any]) -> PollState:
        try:
            status = TaskStatus(data.get("status", TaskStatus.PENDING))
        except ValueError:
            status = TaskStatus.PENDING

        result = data.get("result") or {}
        images = result.get("images", []) if isinstance(result, dict) else []
        logs = data.get("logs")
        state = cls(
            task_id=str(data.get("taskId", task_id)),
            status=status,
            progress=int(data.get("progress") or 0),
            images=[img for img in images if isinstance(img, str) and img],
            error=data.get("error"),
            logs=[str(line) for line in logs] if isinstance(logs, list) else [],
        )
        if status is TaskStatus.COMPLETED:
            state.progress = 100
        elif status is TaskStatus.FAILED:
            state.progress = 100
            state.error = state.error or "Generation failed"
        return state


UpdateCallback = Callable[[PollState], Awaitable[None] | None]


class TaskPoller:
    """Polls a task's status at a fixed interval until it is terminal.

    Transport failures and 5xx answers are tolerated up to
    ``max_transient_errors`` in a row; any other API error stops polling.
    ``stop()`` ends polling at the next wake-up and is also called when the
    poller is used as an async context manager.
    """

    def __init__(
        self,
        client: GenerationClient,
        *,
        interval: float = 1.0,
        max_transient_errors: int = 3,
        on_update: UpdateCallback | None = None,
    ):
        self.client = client
        self.interval = interval
        self.max_transient_errors = max_transient_errors
        self._on_update = on_update
        self._stopped = asyncio.Event()
        self.requests = 0

    async def __aenter__(self) -> TaskPoller:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.stop()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()

    async def poll(self, task_id: str) -> PollState | None:
        """Poll until the task is terminal.

        Returns the terminal state, or the last observed state (possibly
        None) if ``stop()`` was called first.

        Raises:
            PollError: On a non-transient API error, or too many transient
                errors in a row.
        """
        self._stopped.clear()
        state: PollState | None = None
        errors = 0

        while not self.stopped:
            try:
                self.requests += 1
                data = await self.client.get_task_status(task_id)
            except ApiError as e:
                if not e.is_transient:
                    raise PollError(e.message, status_code=e.status_code, detail=e.detail) from e
                errors += 1
                logger.warning(
                    "Status request for %s failed (%d/%d): %s",
                    task_id,
                    errors,
                    self.max_transient_errors,
                    e.message,
                )
                if errors > self.max_transient_errors:
                    raise PollError(
                        f"Giving up on task {task_id} after {errors} failed requests",
                        status_code=e.status_code,
                        detail=e.message,
                    ) from e
            else:
                errors = 0
                state = PollState.from_status(task_id, data or {})
                await self._notify(state)
                if state.is_terminal:
                    return state

            await self._sleep()

        return state

    async def _notify(self, state: PollState) -> None:
        if self._on_update is None:
            return
        outcome = self._on_update(state)
        if inspect.isawaitable(outcome):
            await outcome

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
        except TimeoutError:
            pass

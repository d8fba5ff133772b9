"""Synthetic progress for tasks whose provider gives no progress signal.

The curve is front-loaded: big steps early, shrinking towards a ceiling so a
task never looks finished before the coordinator actually finishes it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable

from .models import Task
from .store import TaskStore

logger = logging.getLogger(__name__)

START_PROGRESS = 10
DEFAULT_CEILING = 95

# (upper bound of the phase, min increment, max increment)
PHASES: tuple[tuple[int, float, float], ...] = (
    (30, 5.0, 13.0),
    (70, 3.0, 8.0),
    (90, 1.0, 4.0),
)
TAIL_INCREMENT = (0.0, 2.0)


def next_progress(
    current: int,
    rng: random.Random | None = None,
    ceiling: int = DEFAULT_CEILING,
) -> int:
    """One step along the progress curve; never decreases, never passes ``ceiling``."""
    rng = rng or random.Random()
    low, high = TAIL_INCREMENT
    for bound, phase_low, phase_high in PHASES:
        if current < bound:
            low, high = phase_low, phase_high
            break
    stepped = round(current + rng.uniform(low, high))
    return max(current, min(ceiling, stepped))


class ProgressTicker:
    """Advances one task's progress on a fixed interval until it is terminal.

    Every write goes through ``TaskStore.modify`` and is skipped once the task
    is terminal, so a tick can never overwrite the coordinator's final state.
    """

    def __init__(
        self,
        store: TaskStore,
        task_id: str,
        *,
        interval: float = 1.5,
        ceiling: int = DEFAULT_CEILING,
        rng: random.Random | None = None,
        on_tick: Callable[[Task], Awaitable[None]] | None = None,
    ):
        self.store = store
        self.task_id = task_id
        self.interval = interval
        self.ceiling = ceiling
        self._rng = rng or random.Random()
        self._on_tick = on_tick
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"progress-{self.task_id}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def tick(self) -> Task | None:
        """Apply one step. Returns None once the task is terminal or unknown."""
        finished = False

        def advance(task: Task) -> bool:
            nonlocal finished
            if task.is_terminal:
                finished = True
                return False
            new_value = next_progress(task.progress, self._rng, self.ceiling)
            if new_value == task.progress:
                return False
            task.progress = new_value
            return True

        updated = await self.store.modify(self.task_id, advance)
        if finished:
            return None
        if updated is None:
            # Unchanged at the ceiling, or unknown task
            return await self.store.get(self.task_id)
        if self._on_tick is not None:
            await self._on_tick(updated)
        return updated

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                task = await self.tick()
            except Exception:
                logger.exception("Progress tick failed for task %s", self.task_id)
                continue
            if task is None or task.is_terminal:
                logger.debug("Progress ticker for %s stopped", self.task_id)
                return

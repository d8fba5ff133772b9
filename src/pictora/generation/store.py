"""TaskStore - durable task records with an in-memory cache.

Records live in a SQLite ``tasks`` table (one JSON document per task) behind
a process-local cache. Writes go to the cache first and are then persisted;
a failed write is logged and the cached state is kept, so an in-flight task
does not lose its latest state to a transient disk error.

Every mutation of a task runs under that task's own lock. Independent tasks
never contend with each other.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import fields
from pathlib import Path
from typing import Any

import aiosqlite

from .models import GenerationResult, Task, TaskStatus, utc_timestamp

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Interrupted by server restart"

SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    module TEXT NOT NULL DEFAULT 'standard',
    status TEXT NOT NULL DEFAULT 'pending',
    data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);
"""

_MUTABLE_FIELDS = {f.name for f in fields(Task)} - {"id", "created_at"}


class TaskStore:
    """Key-value store of Task records addressed by task id.

    Args:
        db_path: SQLite file. ``None`` keeps tasks in memory only.
    """

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = str(db_path) if db_path is not None else None
        self._db: aiosqlite.Connection | None = None
        self._cache: dict[str, Task] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("TaskStore is not open")
        return self._db

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self) -> None:
        """Connect to the database and create the schema."""
        if self.db_path is None or self._db is not None:
            return

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA)
        await self._db.commit()
        logger.info("Task store opened at %s", self.db_path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    # --- Reads ---

    async def get(self, task_id: str) -> Task | None:
        """Return a snapshot of the task, or None if unknown."""
        task = await self._load(task_id)
        return copy.deepcopy(task) if task else None

    async def find_by_status(self, *statuses: TaskStatus) -> list[Task]:
        """Tasks in any of ``statuses``, oldest first."""
        wanted = {TaskStatus(s) for s in statuses}
        found: dict[str, Task] = {}

        if self._db is not None and wanted:
            placeholders = ", ".join("?" for _ in wanted)
            try:
                cursor = await self._db.execute(
                    f"SELECT * FROM tasks WHERE status IN ({placeholders}) ORDER BY created_at",
                    tuple(s.value for s in wanted),
                )
                for row in await cursor.fetchall():
                    task = self._from_row(row)
                    if task is not None:
                        found[task.id] = task
            except (aiosqlite.Error, OSError):
                logger.exception("Failed to query tasks by status")

        # The cache is authoritative for anything it holds
        for task_id, task in self._cache.items():
            if task.status in wanted:
                found[task_id] = task
            else:
                found.pop(task_id, None)

        tasks = sorted(found.values(), key=lambda t: t.created_at)
        return [copy.deepcopy(t) for t in tasks]

    # --- Writes ---

    async def create(self, task: Task) -> Task:
        """Insert a new task.

        Raises:
            ValueError: If a task with the same id already exists.
        """
        async with self._locks[task.id]:
            if await self._load(task.id) is not None:
                raise ValueError(f"Task {task.id} already exists")
            stored = copy.deepcopy(task)
            self._cache[stored.id] = stored
            await self._persist(stored)
            return copy.deepcopy(stored)

    async def put(self, task: Task) -> Task:
        """Insert or replace a task."""
        async with self._locks[task.id]:
            stored = copy.deepcopy(task)
            stored.updated_at = utc_timestamp()
            self._cache[stored.id] = stored
            await self._persist(stored)
            return copy.deepcopy(stored)

    async def modify(self, task_id: str, fn: Callable[[Task], bool | None]) -> Task | None:
        """Read-modify-write under the task lock.

        ``fn`` receives a mutable copy of the task; returning ``False`` leaves
        the stored task untouched. Returns the resulting task, or None if the
        task is unknown or ``fn`` declined the change.
        """
        async with self._locks[task_id]:
            current = await self._load(task_id)
            if current is None:
                return None

            draft = copy.deepcopy(current)
            if fn(draft) is False:
                return None

            draft.updated_at = utc_timestamp()
            self._cache[task_id] = draft
            await self._persist(draft)
            return copy.deepcopy(draft)

    async def update(self, task_id: str, **changes: Any) -> Task | None:
        """Partial update of task fields.

        Raises:
            ValueError: On an unknown or immutable field name.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task field(s): {', '.join(sorted(unknown))}")

        def apply(task: Task) -> bool:
            for name, value in changes.items():
                setattr(task, name, value)
            return True

        return await self.modify(task_id, apply)

    async def append_log(self, task_id: str, message: str) -> Task | None:
        def apply(task: Task) -> bool:
            task.add_log(message)
            return True

        return await self.modify(task_id, apply)

    async def complete(
        self, task_id: str, result: GenerationResult, message: str = ""
    ) -> Task | None:
        """Terminal success: attach the result and pin progress to 100.

        No-op (returns None) if the task is already terminal.
        """

        def apply(task: Task) -> bool:
            if task.is_terminal:
                return False
            task.status = TaskStatus.COMPLETED
            task.progress = 100
            task.result = result
            task.error = None
            task.add_log(message or f"Task completed with {len(result.images)} image(s)")
            return True

        return await self.modify(task_id, apply)

    async def fail(self, task_id: str, error: str) -> Task | None:
        """Terminal failure: record the error and pin progress to 100.

        No-op (returns None) if the task is already terminal.
        """

        def apply(task: Task) -> bool:
            if task.is_terminal:
                return False
            task.status = TaskStatus.FAILED
            task.progress = 100
            task.result = None
            task.error = error
            task.add_log(f"Task failed: {error}")
            return True

        return await self.modify(task_id, apply)

    async def recover_interrupted(self) -> list[str]:
        """Fail tasks left pending or processing by a previous process."""
        orphans = await self.find_by_status(TaskStatus.PENDING, TaskStatus.PROCESSING)
        recovered: list[str] = []
        for task in orphans:
            if await self.fail(task.id, INTERRUPTED_ERROR):
                recovered.append(task.id)
        if recovered:
            logger.warning("Marked %d interrupted task(s) as failed", len(recovered))
        return recovered

    # --- Internals ---

    async def _load(self, task_id: str) -> Task | None:
        task = self._cache.get(task_id)
        if task is not None or self._db is None:
            return task

        try:
            cursor = await self._db.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
            row = await cursor.fetchone()
        except (aiosqlite.Error, OSError):
            logger.exception("Failed to read task %s", task_id)
            return None

        task = self._from_row(row) if row else None
        if task is not None:
            self._cache[task_id] = task
        return task

    async def _persist(self, task: Task) -> None:
        if self._db is None:
            return
        try:
            await self._db.execute(
                """INSERT INTO tasks (id, module, status, data, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       module = excluded.module,
                       status = excluded.status,
                       data = excluded.data,
                       updated_at = excluded.updated_at""",
                (
                    task.id,
                    task.module.value,
                    task.status.value,
                    json.dumps(task.to_dict()),
                    task.created_at,
                    task.updated_at,
                ),
            )
            await self._db.commit()
        except (aiosqlite.Error, OSError):
            logger.exception("Failed to persist task %s, keeping in-memory state", task.id)

    @staticmethod
    def _from_row(row: aiosqlite.Row) -> Task | None:
        try:
            data = json.loads(row["data"])
            data.setdefault("id", row["id"])
            data["status"] = row["status"]
            return Task.from_dict(
                data,
                module=row["module"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
        except (ValueError, TypeError, KeyError):
            logger.warning("Skipping unreadable task record %s", row["id"])
            return None

"""ImageArchive - records finished images for the gallery.

The archive is a result sink: the coordinator hands it every completed task.
Placeholder images and anything that is not an image URL are skipped.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol
from urllib.parse import urlparse

import aiosqlite

from .models import GenerationResult, Task, utc_timestamp
from .providers.placeholder import is_placeholder_url

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS generated_images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL,
    module TEXT NOT NULL DEFAULT 'standard',
    title TEXT NOT NULL,
    prompt TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_generated_images_task ON generated_images(task_id);
"""

_IMAGE_SUFFIX = re.compile(r"\.(png|jpe?g|gif|webp)$", re.IGNORECASE)


class ResultSink(Protocol):
    """Receives each completed task together with its result."""

    async def save(self, task: Task, result: GenerationResult) -> int: ...


def is_archivable(url: Any) -> bool:
    if not isinstance(url, str) or not url:
        return False
    if is_placeholder_url(url) or "/placeholder" in url:
        return False
    return url.startswith(("http://", "https://", "/")) or bool(_IMAGE_SUFFIX.search(url))


def extract_image_title(url: str, index: int = 0) -> str:
    """File name of the URL without its image extension."""
    fallback = f"Generated image {index + 1}"
    try:
        path = urlparse(url).path
    except ValueError:
        return fallback
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return _IMAGE_SUFFIX.sub("", name) or fallback


class ImageArchive:
    """Stores completed images in the ``generated_images`` table."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def init_schema(self) -> None:
        await self.db.executescript(SCHEMA)
        await self.db.commit()

    async def save(self, task: Task, result: GenerationResult) -> int:
        """Archive the images of a completed task. Returns the number saved."""
        images = [url for url in result.images if is_archivable(url)]
        if not images:
            logger.info("No archivable images for task %s", task.id)
            return 0

        now = utc_timestamp()
        await self.db.executemany(
            """INSERT INTO generated_images (task_id, module, title, prompt, url, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (
                    task.id,
                    task.module.value,
                    extract_image_title(url, index),
                    result.used_prompt,
                    url,
                    now,
                )
                for index, url in enumerate(images)
            ],
        )
        await self.db.commit()
        logger.info("Archived %d image(s) for task %s", len(images), task.id)
        return len(images)

    async def recent(
        self, limit: int = 20, offset: int = 0, module: str | None = None
    ) -> list[dict[str, Any]]:
        """Archived images, newest first."""
        query = "SELECT * FROM generated_images"
        params: list[Any] = []
        if module:
            query += " WHERE module = ?"
            params.append(module)
        query += " ORDER BY id DESC LIMIT ? OFFSET ?"
        params.extend([max(1, limit), max(0, offset)])

        cursor = await self.db.execute(query, params)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def for_task(self, task_id: str) -> list[dict[str, Any]]:
        cursor = await self.db.execute(
            "SELECT * FROM generated_images WHERE task_id = ? ORDER BY id", (task_id,)
        )
        return [dict(row) for row in await cursor.fetchall()]

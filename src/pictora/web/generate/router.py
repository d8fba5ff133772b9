"""Generation routes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query, Request

from ..deps import Coordinator, Store
from ..models import GenerateAccepted, envelope
from ..tasks.router import task_status_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generate", tags=["generate"])

ESTIMATED_TIME = 5


async def _read_payload(request: Request) -> dict[str, Any]:
    """Request body as a dict; anything unparseable becomes ``{}``."""
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Unparseable request body, using defaults")
        return {}
    return body if isinstance(body, dict) else {}


@router.post("/{module}")
async def create_generation(module: str, request: Request, coordinator: Coordinator):
    """Create a generation task; images arrive later through the status endpoint."""
    payload = await _read_payload(request)
    task, params = await coordinator.submit(module, payload)
    return envelope(
        GenerateAccepted(
            task_id=task.id,
            estimated_time=ESTIMATED_TIME,
            images=[],
            used_prompt=params.prompt,
            parameters=params.to_dict(),
        )
    )


@router.get("/{module}")
async def get_generation_status(
    module: str,
    store: Store,
    task_id: str | None = Query(None, alias="taskId"),
):
    if not task_id:
        return envelope(None, code=400, message="Missing taskId parameter")
    return await task_status_response(store, task_id)

"""Archived image routes."""

from __future__ import annotations

from fastapi import APIRouter, Query

from ..deps import Archive
from ..models import envelope

router = APIRouter(prefix="/api/images", tags=["images"])


@router.get("")
async def list_images(
    archive: Archive,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    module: str | None = None,
):
    """Archived images, newest first."""
    if archive is None:
        return envelope({"images": [], "total": 0})
    images = await archive.recent(limit=limit, offset=offset, module=module)
    return envelope({"images": images, "total": len(images)})

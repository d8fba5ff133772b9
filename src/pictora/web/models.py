"""Response envelope models.

Every endpoint answers with ``{code, message, data, timestamp, requestId}``;
field names go over the wire in camelCase.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase for JSON serialization."""
    components = string.split("_")
    return components[0] + "".join(word.capitalize() for word in components[1:])


class CamelModel(BaseModel):
    """Base model that serializes to camelCase for frontend compatibility."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(CamelModel):
    code: int = 200
    message: str = "OK"
    data: Any = None
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))


class GenerateAccepted(CamelModel):
    task_id: str
    estimated_time: int = 5
    images: list[str] = Field(default_factory=list)
    used_prompt: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class TaskStatusData(CamelModel):
    task_id: str
    status: str
    progress: int
    result: dict[str, Any] | None = None
    error: str | None = None
    logs: list[str] = Field(default_factory=list)


class ModuleInfo(CamelModel):
    id: str
    multiple_references: bool = False


def envelope(data: Any = None, *, code: int = 200, message: str = "OK") -> JSONResponse:
    """Wrap ``data`` in the response envelope; ``code`` is also the HTTP status."""
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    body = Envelope(code=code, message=message, data=data)
    return JSONResponse(status_code=code, content=body.model_dump(by_alias=True, mode="json"))

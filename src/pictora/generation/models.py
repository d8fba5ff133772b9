"""Data models for generation tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """Lifecycle state of a generation task."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class ModuleType(StrEnum):
    """Generation modules exposed to the front end."""

    FIGURINE = "figurine"
    MULTI_POSE = "multi-pose"
    SKETCH_CONTROL = "sketch-control"
    IMAGE_FUSION = "image-fusion"
    SOCIAL_COVER = "social-cover"
    OBJECT_REPLACE = "object-replace"
    ID_PHOTOS = "id-photos"
    GROUP_PHOTO = "group-photo"
    MULTI_CAMERA = "multi-camera"
    STANDARD = "standard"

    @classmethod
    def resolve(cls, value: Any) -> ModuleType:
        """Map a raw module identifier to a known module, defaulting to STANDARD."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.STANDARD


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp used in task logs and records."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class GenerationParameters:
    """Normalized generation request produced by the ParamBuilder."""

    prompt: str
    negative_prompt: str = ""
    steps: int = 30
    guidance_scale: float = 7.5
    image_count: int = 1
    reference_image: str | None = None
    reference_images: tuple[str, ...] = ()

    @property
    def all_reference_images(self) -> list[str]:
        """Single and multiple reference payloads, single first."""
        images: list[str] = []
        if self.reference_image:
            images.append(self.reference_image)
        images.extend(img for img in self.reference_images if img and img not in images)
        return images

    def to_dict(self) -> dict[str, Any]:
        # Reference payloads can be megabytes of base64; only their count is kept.
        return {
            "prompt": self.prompt,
            "negativePrompt": self.negative_prompt,
            "steps": self.steps,
            "guidanceScale": self.guidance_scale,
            "imageCount": self.image_count,
            "referenceImageCount": len(self.all_reference_images),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationParameters:
        return cls(
            prompt=str(data.get("prompt", "")),
            negative_prompt=str(data.get("negativePrompt", "")),
            steps=int(data.get("steps", 30)),
            guidance_scale=float(data.get("guidanceScale", 7.5)),
            image_count=int(data.get("imageCount", 1)),
        )


@dataclass
class GenerationResult:
    """Output attached to a task when it completes."""

    images: list[str]
    used_prompt: str
    parameters: GenerationParameters
    provider: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "images": list(self.images),
            "usedPrompt": self.used_prompt,
            "parameters": self.parameters.to_dict(),
            "provider": self.provider,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationResult:
        return cls(
            images=[img for img in data.get("images", []) if isinstance(img, str)],
            used_prompt=str(data.get("usedPrompt", "")),
            parameters=GenerationParameters.from_dict(data.get("parameters") or {}),
            provider=str(data.get("provider", "")),
        )


@dataclass
class Task:
    """One asynchronous image-generation request.

    Invariants kept by the store and coordinator:
      - ``result`` is set only when completed, ``error`` only when failed.
      - ``progress`` is 100 in both terminal states.
      - ``logs`` is append-only.
    """

    id: str
    module: ModuleType = ModuleType.STANDARD
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    result: GenerationResult | None = None
    error: str | None = None
    logs: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: str = field(default_factory=utc_timestamp)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def add_log(self, message: str) -> str:
        entry = f"[{utc_timestamp()}] {message}"
        self.logs.append(entry)
        return entry

    def to_dict(self) -> dict[str, Any]:
        """Serialize the persisted task fields."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "logs": list(self.logs),
        }

    def status_dict(self) -> dict[str, Any]:
        """Task status as reported to clients (``taskId`` instead of ``id``)."""
        data = self.to_dict()
        data["taskId"] = data.pop("id")
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        module: str | None = None,
        created_at: str | None = None,
        updated_at: str | None = None,
    ) -> Task:
        try:
            status = TaskStatus(data.get("status", TaskStatus.PENDING))
        except ValueError:
            status = TaskStatus.PENDING
        result = data.get("result")
        logs = data.get("logs")
        task = cls(
            id=str(data["id"]),
            module=ModuleType.resolve(module),
            status=status,
            progress=int(data.get("progress", 0)),
            result=GenerationResult.from_dict(result) if isinstance(result, dict) else None,
            error=data.get("error"),
            logs=[str(line) for line in logs] if isinstance(logs, list) else [],
        )
        if created_at:
            task.created_at = created_at
        if updated_at:
            task.updated_at = updated_at
        return task

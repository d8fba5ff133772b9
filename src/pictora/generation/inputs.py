"""Per-module request payloads.

The browser sends a loosely typed JSON object per module. Each module gets
its own dataclass here; ``parse_module_input`` picks the variant by module id
and coerces fields, falling back to defaults instead of raising.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from .models import ModuleType


def _text(payload: Mapping[str, Any], *keys: str, default: str = "") -> str:
    """First non-blank string among ``keys``."""
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return default


def _number(payload: Mapping[str, Any], key: str, default: float) -> float:
    value = payload.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _integer(payload: Mapping[str, Any], key: str, default: int, lo: int, hi: int) -> int:
    number = _number(payload, key, default)
    if not math.isfinite(number):
        number = default
    return max(lo, min(hi, int(number)))


def _strings(payload: Mapping[str, Any], key: str) -> list[str]:
    value = payload.get(key)
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _flag(payload: Mapping[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key)
    return value if isinstance(value, bool) else default


def _reference(payload: Mapping[str, Any]) -> str | None:
    return _text(payload, "referenceImage") or None


@dataclass
class ModuleInput:
    """Base for module payload variants."""

    module: ClassVar[ModuleType] = ModuleType.STANDARD

    reference_image: str | None = None
    reference_images: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ModuleInput:
        raise NotImplementedError


@dataclass
class FigurineInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.FIGURINE

    description: str = ""
    style: str = "realistic"
    quality: int = 80
    background_color: str = ""
    lighting: str = ""
    angle: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> FigurineInput:
        options = payload.get("additionalOptions")
        if not isinstance(options, Mapping):
            options = {}
        return cls(
            description=_text(payload, "description", "prompt"),
            style=_text(payload, "style", default="realistic").lower(),
            quality=_integer(payload, "quality", 80, 60, 100),
            background_color=_text(options, "backgroundColor"),
            lighting=_text(options, "lighting"),
            angle=_text(options, "angle"),
            reference_image=_reference(payload),
        )


@dataclass
class MultiPoseInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.MULTI_POSE

    character_features: str = ""
    pose_count: int = 4
    pose_types: list[str] = field(default_factory=list)
    maintain_style: bool = True

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> MultiPoseInput:
        return cls(
            character_features=_text(payload, "characterFeatures", "description", "prompt"),
            pose_count=_integer(payload, "poseCount", 4, 1, 4),
            pose_types=_strings(payload, "poseTypes"),
            maintain_style=_flag(payload, "maintainStyle", True),
            reference_image=_reference(payload),
        )


@dataclass
class SketchControlInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.SKETCH_CONTROL

    description: str = ""
    control_strength: int = 70

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SketchControlInput:
        return cls(
            description=_text(payload, "description", "prompt"),
            control_strength=_integer(payload, "controlStrength", 70, 10, 100),
            reference_image=_reference(payload),
        )


@dataclass
class ImageFusionInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.IMAGE_FUSION

    description: str = ""
    fusion_strength: int = 60

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ImageFusionInput:
        return cls(
            description=_text(payload, "description", "prompt"),
            fusion_strength=_integer(payload, "fusionStrength", 60, 10, 100),
            reference_image=_reference(payload),
            reference_images=_strings(payload, "referenceImages"),
        )


@dataclass
class ObjectReplaceInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.OBJECT_REPLACE

    description: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ObjectReplaceInput:
        return cls(
            description=_text(payload, "description", "prompt"),
            reference_image=_reference(payload),
            reference_images=_strings(payload, "referenceImages"),
        )


@dataclass
class IdPhotosInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.ID_PHOTOS

    size: str = "33x48mm"
    background: str = "blue"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> IdPhotosInput:
        return cls(
            size=_text(payload, "size", default="33x48mm"),
            background=_text(payload, "background", default="blue"),
            reference_image=_reference(payload),
        )


@dataclass
class GroupPhotoInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.GROUP_PHOTO

    description: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> GroupPhotoInput:
        return cls(
            description=_text(payload, "description", "prompt"),
            reference_image=_reference(payload),
            reference_images=_strings(payload, "referenceImages"),
        )


@dataclass
class MultiCameraInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.MULTI_CAMERA

    description: str = ""
    angles: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> MultiCameraInput:
        return cls(
            description=_text(payload, "description", "prompt"),
            angles=_strings(payload, "angles"),
            reference_image=_reference(payload),
        )


@dataclass
class SocialCoverInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.SOCIAL_COVER

    platform: str = "youtube"
    title: str = ""
    subtitle: str = ""
    style: str = "modern minimal"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SocialCoverInput:
        return cls(
            platform=_text(payload, "platform", default="youtube").lower(),
            title=_text(payload, "title", "description", "prompt"),
            subtitle=_text(payload, "subtitle"),
            style=_text(payload, "style", default="modern minimal"),
            reference_image=_reference(payload),
        )


@dataclass
class StandardInput(ModuleInput):
    module: ClassVar[ModuleType] = ModuleType.STANDARD

    description: str = ""
    style: str = ""
    count: int = 1

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> StandardInput:
        return cls(
            description=_text(payload, "description", "prompt"),
            style=_text(payload, "style"),
            count=_integer(payload, "count", 1, 1, 4),
            reference_image=_reference(payload),
            reference_images=_strings(payload, "referenceImages"),
        )


MODULE_INPUTS: dict[ModuleType, type[ModuleInput]] = {
    cls.module: cls
    for cls in (
        FigurineInput,
        MultiPoseInput,
        SketchControlInput,
        ImageFusionInput,
        ObjectReplaceInput,
        IdPhotosInput,
        GroupPhotoInput,
        MultiCameraInput,
        SocialCoverInput,
        StandardInput,
    )
}


def parse_module_input(module_id: Any, payload: Any) -> ModuleInput:
    """Build the typed input for ``module_id`` from a raw request body.

    Never raises: unknown modules map to the standard variant and a
    non-object payload is treated as empty.
    """
    if not isinstance(payload, Mapping):
        payload = {}
    module = ModuleType.resolve(module_id)
    return MODULE_INPUTS[module].from_payload(payload)

"""ParamBuilder - maps module input to normalized generation parameters.

Pure and total: every module has an assembly rule, and anything missing or
malformed in the request degrades to a documented default.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .inputs import (
    FigurineInput,
    GroupPhotoInput,
    IdPhotosInput,
    ImageFusionInput,
    ModuleInput,
    MultiCameraInput,
    MultiPoseInput,
    ObjectReplaceInput,
    SketchControlInput,
    SocialCoverInput,
    StandardInput,
    parse_module_input,
)
from .models import GenerationParameters, ModuleType

# (minimum quality, value) tiers, highest first
QUALITY_STEPS: tuple[tuple[int, int], ...] = ((95, 50), (85, 40), (75, 35))
QUALITY_GUIDANCE: tuple[tuple[int, float], ...] = ((95, 8.5), (85, 8.0), (75, 7.5))
DEFAULT_STEPS = 30
DEFAULT_GUIDANCE = 7.0

MAX_IMAGES = 4

FIGURINE_STYLES: dict[str, list[str]] = {
    "anime": ["anime figure", "japanese figurine", "PVC figure"],
    "realistic": ["realistic figurine", "detailed sculpting", "collectible grade"],
    "chibi": ["chibi style", "cute", "kawaii", "super deformed"],
    "mecha": ["mecha figure", "mechanical details", "mech suit"],
    "fantasy": ["fantasy figurine", "epic", "ornate"],
}

QUALITY_TAGS: tuple[tuple[int, list[str]], ...] = (
    (100, ["legendary quality", "perfect", "flawless"]),
    (90, ["masterpiece", "ultra detailed", "8k"]),
    (80, ["high quality", "extremely detailed", "masterpiece"]),
    (70, ["high quality"]),
    (60, ["good quality"]),
)

SOCIAL_PLATFORM_SIZES: dict[str, str] = {
    "youtube": "1280x720",
    "instagram": "1080x1080",
    "facebook": "820x312",
    "twitter": "1500x500",
    "linkedin": "1584x396",
}

DEFAULT_DESCRIPTION = "high quality image"


def steps_for_quality(quality: int) -> int:
    for threshold, steps in QUALITY_STEPS:
        if quality >= threshold:
            return steps
    return DEFAULT_STEPS


def guidance_for_quality(quality: int) -> float:
    for threshold, scale in QUALITY_GUIDANCE:
        if quality >= threshold:
            return scale
    return DEFAULT_GUIDANCE


def quality_tags(quality: int) -> list[str]:
    """Tags for the highest tier at or below ``quality``."""
    for threshold, tags in QUALITY_TAGS:
        if quality >= threshold:
            return list(tags)
    return []


def _join(*parts: str | None) -> str:
    return ", ".join(p for p in parts if p)


def _clamp_count(count: int) -> int:
    return max(1, min(MAX_IMAGES, count))


class ParamBuilder:
    """Builds GenerationParameters for every module."""

    def __init__(self) -> None:
        self._rules: dict[ModuleType, Callable[[Any], GenerationParameters]] = {
            ModuleType.FIGURINE: self._figurine,
            ModuleType.MULTI_POSE: self._multi_pose,
            ModuleType.SKETCH_CONTROL: self._sketch_control,
            ModuleType.IMAGE_FUSION: self._image_fusion,
            ModuleType.OBJECT_REPLACE: self._object_replace,
            ModuleType.ID_PHOTOS: self._id_photos,
            ModuleType.GROUP_PHOTO: self._group_photo,
            ModuleType.MULTI_CAMERA: self._multi_camera,
            ModuleType.SOCIAL_COVER: self._social_cover,
            ModuleType.STANDARD: self._standard,
        }

    def build(self, module_id: Any, raw_input: Any) -> GenerationParameters:
        """Parse ``raw_input`` for ``module_id`` and assemble its parameters."""
        return self.build_from_input(parse_module_input(module_id, raw_input))

    def build_from_input(self, module_input: ModuleInput) -> GenerationParameters:
        rule = self._rules.get(module_input.module, self._standard)
        return rule(module_input)

    # --- Module rules ---

    def _figurine(self, data: FigurineInput) -> GenerationParameters:
        extras = [
            data.background_color and f"{data.background_color} background",
            data.lighting and f"{data.lighting} lighting",
            data.angle and f"{data.angle} angle",
        ]
        prompt = _join(
            f"figurine of {data.description or 'a character'}",
            *FIGURINE_STYLES.get(data.style, []),
            *quality_tags(data.quality),
            *extras,
            "professional photography",
            "studio lighting",
        )
        return GenerationParameters(
            prompt=prompt,
            negative_prompt="blurry, low quality, distorted, ugly",
            steps=steps_for_quality(data.quality),
            guidance_scale=guidance_for_quality(data.quality),
            reference_image=data.reference_image,
        )

    def _multi_pose(self, data: MultiPoseInput) -> GenerationParameters:
        prompt = _join(
            "character sheet",
            "multiple poses",
            "different angles",
            data.character_features or "consistent character design",
            *(f"{pose} pose" for pose in data.pose_types),
            "consistent art style" if data.maintain_style else None,
            "reference sheet style",
        )
        return GenerationParameters(
            prompt=prompt,
            negative_prompt="inconsistent character, different person, blurry",
            steps=35,
            guidance_scale=8.0,
            image_count=_clamp_count(data.pose_count),
            reference_image=data.reference_image,
        )

    def _sketch_control(self, data: SketchControlInput) -> GenerationParameters:
        return GenerationParameters(
            prompt=_join(
                "convert sketch to high quality render",
                data.description,
                f"structure adherence {data.control_strength}%",
            ),
            negative_prompt="blurry, messy lines, off-structure",
            steps=steps_for_quality(70),
            guidance_scale=guidance_for_quality(80),
            reference_image=data.reference_image,
        )

    def _image_fusion(self, data: ImageFusionInput) -> GenerationParameters:
        return GenerationParameters(
            prompt=_join(
                "image blending, natural fusion",
                data.description,
                f"fusion strength {data.fusion_strength}%",
            ),
            negative_prompt="artifacts, ghosting, mismatched lighting",
            steps=35,
            guidance_scale=7.5,
            reference_image=data.reference_image,
            reference_images=tuple(data.reference_images),
        )

    def _object_replace(self, data: ObjectReplaceInput) -> GenerationParameters:
        return GenerationParameters(
            prompt=_join(
                "replace selected object with",
                data.description or "target object",
                "seamless integration",
            ),
            negative_prompt="halo, mismatch lighting, wrong perspective",
            steps=30,
            guidance_scale=7.5,
            reference_image=data.reference_image,
            reference_images=tuple(data.reference_images),
        )

    def _id_photos(self, data: IdPhotosInput) -> GenerationParameters:
        return GenerationParameters(
            prompt=_join(
                "generate ID photo grid",
                data.size,
                f"background {data.background}",
                "clean portrait, frontal, neutral expression",
            ),
            negative_prompt="smile, tilt head, busy background",
            steps=30,
            guidance_scale=7.2,
            reference_image=data.reference_image,
        )

    def _group_photo(self, data: GroupPhotoInput) -> GenerationParameters:
        return GenerationParameters(
            prompt=_join(
                "composite group photo",
                data.description,
                "consistent lighting and scale",
            ),
            negative_prompt="mismatched proportions, duplicate faces",
            steps=35,
            guidance_scale=7.8,
            reference_image=data.reference_image,
            reference_images=tuple(data.reference_images),
        )

    def _multi_camera(self, data: MultiCameraInput) -> GenerationParameters:
        angles = " | ".join(data.angles)
        return GenerationParameters(
            prompt=_join(
                "multi-angle render",
                data.description,
                angles and f"angles: {angles}",
            ),
            negative_prompt="inconsistent scene details across angles",
            steps=35,
            guidance_scale=8.0,
            reference_image=data.reference_image,
        )

    def _social_cover(self, data: SocialCoverInput) -> GenerationParameters:
        size = SOCIAL_PLATFORM_SIZES.get(data.platform, SOCIAL_PLATFORM_SIZES["youtube"])
        return GenerationParameters(
            prompt=_join(
                "social media cover design",
                f"size {size}",
                data.title,
                data.subtitle,
                data.style,
                "high contrast, readable typography",
            ),
            negative_prompt="low contrast, unreadable text, cluttered",
            steps=28,
            guidance_scale=7.3,
            reference_image=data.reference_image,
        )

    def _standard(self, data: StandardInput) -> GenerationParameters:
        return GenerationParameters(
            prompt=_join(
                data.description or DEFAULT_DESCRIPTION,
                data.style and f"style {data.style}",
                "balanced composition, detailed, clean lighting",
            ),
            negative_prompt="low quality, blurry, artifacts",
            steps=30,
            guidance_scale=7.5,
            image_count=_clamp_count(data.count),
            reference_image=data.reference_image,
            reference_images=tuple(data.reference_images),
        )


def build_parameters(module_id: Any, raw_input: Any) -> GenerationParameters:
    """Module-level shortcut around a shared ParamBuilder."""
    return _default_builder.build(module_id, raw_input)


_default_builder = ParamBuilder()

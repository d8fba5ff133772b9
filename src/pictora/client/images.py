"""Reference image encoding for generation requests.

The server expects raw base64 payloads. Callers may hand us local files,
data URLs, http(s) URLs or base64 that is already raw.
"""

from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Any

import httpx

# Longer strings are never treated as file paths
_MAX_PATH_LENGTH = 4096


class ImageEncodingError(Exception):
    """Raised when a reference image cannot be read or downloaded."""


def encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encode_file(path: str | Path) -> str:
    try:
        return encode_bytes(Path(path).expanduser().read_bytes())
    except OSError as e:
        raise ImageEncodingError(f"Cannot read image file {path}: {e}") from e


def strip_data_url(value: str) -> str:
    """``data:image/png;base64,AAAA`` -> ``AAAA``."""
    return value.split("base64,", 1)[1] if "base64," in value else value


def _is_file(value: str) -> bool:
    if len(value) > _MAX_PATH_LENGTH or "\n" in value:
        return False
    try:
        return Path(value).expanduser().is_file()
    except (OSError, ValueError):
        return False


def _is_base64(value: str) -> bool:
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


async def encode_reference_image(value: str, client: httpx.AsyncClient) -> str:
    """Normalize one reference image to raw base64.

    Raises:
        ImageEncodingError: If a file cannot be read, a URL cannot be
            fetched, or the value is none of the supported forms.
    """
    value = value.strip()
    if value.startswith(("http://", "https://")):
        try:
            response = await client.get(value)
        except httpx.HTTPError as e:
            raise ImageEncodingError(f"Cannot download image {value}: {e}") from e
        if response.status_code >= 400:
            raise ImageEncodingError(
                f"Cannot download image {value}: HTTP {response.status_code}"
            )
        return encode_bytes(response.content)
    if "base64," in value:
        return strip_data_url(value)
    if _is_file(value):
        return encode_file(value)
    if _is_base64(value):
        return value
    raise ImageEncodingError(f"Unrecognized reference image: {value[:60]}")


async def prepare_payload(payload: dict[str, Any], client: httpx.AsyncClient) -> dict[str, Any]:
    """Copy of ``payload`` with its reference images encoded as raw base64."""
    prepared = dict(payload)
    reference = prepared.get("referenceImage")
    if isinstance(reference, str) and reference:
        prepared["referenceImage"] = await encode_reference_image(reference, client)

    references = prepared.get("referenceImages")
    if isinstance(references, list):
        prepared["referenceImages"] = [
            await encode_reference_image(item, client)
            for item in references
            if isinstance(item, str) and item
        ]
    return prepared

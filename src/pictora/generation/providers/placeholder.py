"""Deterministic placeholder images for when no back end is configured."""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

from .base import ProviderAdapter, ProviderReply

PLACEHOLDER_MARKER = "placeholder"
PLACEHOLDER_HOST = "https://picsum.photos"
PLACEHOLDER_SIZE = 1024


def placeholder_urls(prompt: str, count: int = 1) -> list[str]:
    """Stable placeholder URLs for ``prompt``; same prompt, same URLs."""
    digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:12]
    return [
        f"{PLACEHOLDER_HOST}/seed/{PLACEHOLDER_MARKER}-{digest}-{n}"
        f"/{PLACEHOLDER_SIZE}/{PLACEHOLDER_SIZE}"
        for n in range(1, max(1, count) + 1)
    ]


def is_placeholder_url(url: object) -> bool:
    return isinstance(url, str) and url.startswith(PLACEHOLDER_HOST) and PLACEHOLDER_MARKER in url


class PlaceholderProvider(ProviderAdapter):
    """Returns placeholder URLs without any network call."""

    name = "placeholder"
    is_placeholder = True

    async def generate(
        self,
        prompt: str,
        *,
        negative_prompt: str = "",
        reference_images: Sequence[str] = (),
        count: int = 1,
    ) -> ProviderReply:
        images = placeholder_urls(prompt, count)
        return ProviderReply(
            images=images,
            raw_text="\n".join(f"![placeholder]({url})" for url in images),
            provider=self.name,
            placeholder=True,
        )

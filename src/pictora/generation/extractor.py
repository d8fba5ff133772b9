"""ResponseExtractor - recovers image URLs from free-form model replies.

Image-capable chat models rarely return structured output. URLs show up as
markdown images, provider-specific link markup, naked CDN links or plain
URLs in prose. ``extract_image_urls`` runs an ordered chain of pattern
families over the reply and returns the de-duplicated URLs in first-seen
order (earlier families first).
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlsplit

# 1. Standard markdown image: ![alt](url)
MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\(\s*(https?://[^\s)]+)")

# 2. Provider inline convention: |>![image](url) or |>[image](url)
PROVIDER_INLINE = re.compile(r"\|>\s*!?\[[^\]]*\]\(\s*(https?://[^\s)]+)")

# 3. Direct links on known provider CDNs, matched without any wrapping
DEFAULT_CDN_PATTERNS: tuple[str, ...] = (
    r"https?://cloudflarer?2?\.nananobanana\.com/[^\s)<>\"{}|\\^`\[\]]+",
    r"https?://filesystem\.site/cdn/[^\s)<>\"{}|\\^`\[\]]+",
)

# 4. Bare URLs whose path ends in an image extension (query and fragment allowed)
IMAGE_EXTENSION_URL = re.compile(
    r"https?://[^\s<>\"'()\[\]{}?#]+\.(?:png|jpe?g|gif|webp|svg)"
    r"(?:\?[^\s<>\"'()\[\]{}#]*)?(?:#[^\s<>\"'()\[\]{}]*)?"
    r"(?=[\s<>\"'()\[\]{}]|[.,;:!]*(?:\s|$))",
    re.IGNORECASE,
)

# 5. Any URL; kept only when it looks image-related
BARE_URL = re.compile(r"https?://[^\s<>\"'`]+")
# Matched against whole path and query tokens, never the host
IMAGE_HINTS = frozenset(
    {
        "image",
        "images",
        "img",
        "photo",
        "photos",
        "picture",
        "render",
        "generated",
        "cdn",
        "media",
        "png",
        "jpg",
        "jpeg",
        "gif",
        "webp",
        "svg",
    }
)
_TOKEN_SEPARATORS = re.compile(r"[/\-_.?=&+%,]+")

TRAILING_PUNCTUATION = ")]}>.,;:!?'\"`"


def clean_url(url: str) -> str:
    """Strip trailing punctuation and brackets picked up from prose."""
    return url.strip().rstrip(TRAILING_PUNCTUATION)


def _has_image_hint(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    tokens = _TOKEN_SEPARATORS.split(f"{parts.path}?{parts.query}".lower())
    return not IMAGE_HINTS.isdisjoint(tokens)


def _dedupe(candidates: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    urls: list[str] = []
    for candidate in candidates:
        url = clean_url(candidate)
        if not url.startswith(("http://", "https://")) or url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls


def extract_image_urls(
    text: str | None,
    *,
    cdn_patterns: Iterable[str] = DEFAULT_CDN_PATTERNS,
) -> list[str]:
    """Extract image URLs from ``text``.

    Pure and total: returns an empty list for empty or non-string input and
    never raises. The caller caps the result to the requested image count.
    """
    if not isinstance(text, str) or not text:
        return []

    candidates: list[str] = []
    candidates.extend(MARKDOWN_IMAGE.findall(text))
    candidates.extend(PROVIDER_INLINE.findall(text))
    for pattern in cdn_patterns:
        candidates.extend(m.group(0) for m in re.finditer(pattern, text, re.IGNORECASE))
    candidates.extend(m.group(0) for m in IMAGE_EXTENSION_URL.finditer(text))
    candidates.extend(
        url for url in BARE_URL.findall(text) if _has_image_hint(clean_url(url))
    )
    return _dedupe(candidates)

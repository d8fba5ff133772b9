"""Image-generation back ends and the policy that picks one per task."""

from __future__ import annotations

import logging

import httpx

from ..config import GenerationConfig
from .base import ProviderAdapter, ProviderError, ProviderReply
from .chat import ChatImageProvider, primary_provider, secondary_provider
from .placeholder import PlaceholderProvider, is_placeholder_url, placeholder_urls

logger = logging.getLogger(__name__)

__all__ = [
    "ChatImageProvider",
    "PlaceholderProvider",
    "ProviderAdapter",
    "ProviderError",
    "ProviderReply",
    "is_placeholder_url",
    "placeholder_urls",
    "select_provider",
]


def select_provider(
    config: GenerationConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderAdapter:
    """Primary if configured, else secondary if configured, else placeholder."""
    if config.primary.configured:
        return primary_provider(config, transport)
    if config.secondary.configured:
        return secondary_provider(config, transport)
    logger.info("No image provider configured, using placeholders")
    return PlaceholderProvider()

"""Chat-completions image providers.

Both the primary image model and the OpenRouter back end speak the
OpenAI-compatible ``POST /chat/completions`` protocol. The reply is a chat
message whose content carries the image links in one form or another, so
every reply goes through the response extractor.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from ..config import GenerationConfig
from ..extractor import extract_image_urls
from .base import ProviderAdapter, ProviderError, ProviderReply

logger = logging.getLogger(__name__)

MAX_TOKENS = 4000
TEMPERATURE = 0.7
DEFAULT_MEDIA_TYPE = "image/jpeg"

EDIT_INSTRUCTION = (
    "Edit the provided image(s) according to this request and return the "
    "resulting image: {prompt}"
)


def to_data_url(payload: str) -> str:
    """Wrap raw base64 in a data URL; data and http(s) URLs pass through."""
    payload = payload.strip()
    if payload.startswith(("data:image/", "http://", "https://")):
        return payload
    return f"data:{DEFAULT_MEDIA_TYPE};base64,{payload}"


def _message_text(content: Any) -> str:
    """Flatten message content (string or list of typed parts) to text."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    texts: list[str] = []
    for part in content:
        if isinstance(part, str):
            texts.append(part)
        elif isinstance(part, dict):
            if part.get("type") == "text" and isinstance(part.get("text"), str):
                texts.append(part["text"])
            elif part.get("type") == "image_url":
                url = (part.get("image_url") or {}).get("url")
                if isinstance(url, str):
                    texts.append(url)
    return "\n".join(texts)


def _message_images(message: dict[str, Any]) -> list[str]:
    """Structured images attached to the message (OpenRouter style)."""
    images: list[str] = []
    for item in message.get("images") or []:
        if not isinstance(item, dict):
            continue
        url = (item.get("image_url") or {}).get("url")
        if isinstance(url, str) and url:
            images.append(url)
    return images


class ChatImageProvider(ProviderAdapter):
    """Image generation through an OpenAI-compatible chat endpoint.

    Args:
        name: Label recorded on results and task logs.
        base_url: API root, e.g. ``https://openrouter.ai/api/v1``.
        api_key: Bearer token.
        model: Model identifier sent in the request body.
        timeout: Per-request timeout in seconds.
        extra_headers: Additional headers sent with every request.
        extra_body: Additional top-level fields merged into the request body.
        transport: Optional httpx transport (tests inject a mock here).
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str,
        model: str,
        *,
        timeout: float = 60.0,
        extra_headers: dict[str, str] | None = None,
        extra_body: dict[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.name = name
        self.model = model
        self.extra_body = dict(extra_body or {})

        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        headers.update(extra_headers or {})

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def build_messages(
        self,
        prompt: str,
        negative_prompt: str = "",
        reference_images: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        text = prompt
        if negative_prompt:
            text = f"{prompt}\n\nAvoid: {negative_prompt}"

        if not reference_images:
            return [{"role": "user", "content": text}]

        content: list[dict[str, Any]] = [
            {"type": "image_url", "image_url": {"url": to_data_url(image)}}
            for image in reference_images
        ]
        content.append({"type": "text", "text": EDIT_INSTRUCTION.format(prompt=text)})
        return [{"role": "user", "content": content}]

    def build_body(
        self,
        prompt: str,
        negative_prompt: str = "",
        reference_images: Sequence[str] = (),
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self.build_messages(prompt, negative_prompt, reference_images),
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }
        body.update(self.extra_body)
        return body

    async def generate(
        self,
        prompt: str,
        *,
        negative_prompt: str = "",
        reference_images: Sequence[str] = (),
        count: int = 1,
    ) -> ProviderReply:
        body = self.build_body(prompt, negative_prompt, reference_images)
        logger.info(
            "Requesting %d image(s) from %s (model=%s, references=%d)",
            count,
            self.name,
            self.model,
            len(reference_images),
        )
        data = await self._request("POST", "/chat/completions", json=body)

        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"{self.name} reply has no message",
                provider=self.name,
                detail=str(data)[:200],
            ) from e
        if not isinstance(message, dict):
            raise ProviderError(f"{self.name} reply has no message", provider=self.name)

        text = _message_text(message.get("content"))
        images = _message_images(message)
        for url in extract_image_urls(text):
            if url not in images:
                images.append(url)

        if not images:
            raise ProviderError(
                f"No images found in {self.name} reply",
                provider=self.name,
                detail=text[:200],
            )

        return ProviderReply(images=images, raw_text=text, provider=self.name)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request and decode the JSON reply.

        Raises:
            ProviderError: On HTTP errors, connection failures, timeouts or
                an undecodable body.
        """
        try:
            response = await self._client.request(method, url, json=json)

            if response.status_code >= 400:
                detail = ""
                try:
                    body = response.json()
                    error = body.get("error", body) if isinstance(body, dict) else body
                    if isinstance(error, dict):
                        detail = str(error.get("message", error))
                    else:
                        detail = str(error)
                except ValueError:
                    detail = response.text[:200]

                raise ProviderError(
                    f"{self.name} returned {response.status_code}: {detail}",
                    provider=self.name,
                    status_code=response.status_code,
                    detail=detail,
                )

            data = response.json()
            if not isinstance(data, dict):
                raise ProviderError(f"{self.name} returned a non-object body", provider=self.name)
            return data

        except httpx.TimeoutException as e:
            raise ProviderError(
                f"{self.name} request timed out",
                provider=self.name,
                detail=str(e),
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                f"Cannot reach {self.name}: {e}",
                provider=self.name,
                detail=str(e),
            ) from e
        except ValueError as e:
            raise ProviderError(
                f"{self.name} returned invalid JSON",
                provider=self.name,
                detail=str(e),
            ) from e


def primary_provider(
    config: GenerationConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatImageProvider:
    """The primary image model (``nano-banana`` by default)."""
    settings = config.primary
    return ChatImageProvider(
        "primary",
        settings.base_url,
        settings.api_key,
        settings.model,
        timeout=config.provider_timeout,
        transport=transport,
    )


def secondary_provider(
    config: GenerationConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChatImageProvider:
    """OpenRouter, asked explicitly for image output."""
    settings = config.secondary
    return ChatImageProvider(
        "openrouter",
        settings.base_url,
        settings.api_key,
        settings.model,
        timeout=config.provider_timeout,
        extra_headers={"HTTP-Referer": config.app_url, "X-Title": config.app_title},
        extra_body={"modalities": ["image", "text"]},
        transport=transport,
    )

"""Provider adapter interface shared by every image back end."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field


class ProviderError(Exception):
    """Raised when a provider call fails or yields no usable images.

    Every ProviderError is retryable from the coordinator's point of view.
    """

    def __init__(self, message: str, *, provider: str = "", status_code: int = 0, detail: str = ""):
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


@dataclass
class ProviderReply:
    """Images returned by one provider call."""

    images: list[str] = field(default_factory=list)
    raw_text: str = ""
    provider: str = ""
    placeholder: bool = False


class ProviderAdapter(ABC):
    """An image-generation back end."""

    name: str = "provider"
    is_placeholder: bool = False

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        negative_prompt: str = "",
        reference_images: Sequence[str] = (),
        count: int = 1,
    ) -> ProviderReply:
        """Generate images for ``prompt``.

        Raises:
            ProviderError: On transport, protocol or extraction failure.
        """

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

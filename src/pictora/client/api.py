"""HTTP client for the Pictora generation API.

Unwraps the ``{code, message, data}`` envelope and raises ApiError for
anything that is not a successful answer.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .images import ImageEncodingError, prepare_payload

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised when an API call fails.

    ``status_code`` is 0 for connection failures and timeouts.
    """

    def __init__(self, message: str, status_code: int = 0, detail: str = ""):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        return self.status_code == 0 or self.status_code >= 500


class GenerationClient:
    """Async client for the generation and task status endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> GenerationClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Generation ---

    async def generate(self, module: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Submit a generation request.

        POST /api/generate/{module}

        Reference images (file paths, data URLs, http URLs) are encoded to
        raw base64 first.

        Returns:
            Dict with 'taskId', 'estimatedTime', 'usedPrompt' and 'parameters'.
        """
        try:
            prepared = await prepare_payload(payload, self._client)
        except ImageEncodingError as e:
            raise ApiError(str(e), detail=str(e)) from e
        return await self._request("POST", f"/api/generate/{module}", json=prepared)

    async def get_task_status(self, task_id: str) -> dict[str, Any]:
        """GET /api/task/{task_id}/status"""
        return await self._request("GET", f"/api/task/{task_id}/status")

    async def list_modules(self) -> list[dict[str, Any]]:
        """GET /api/modules"""
        return await self._request("GET", "/api/modules")

    async def health(self) -> dict[str, Any]:
        """GET /api/health"""
        return await self._request("GET", "/api/health")

    # --- Internals ---

    async def _request(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request and return the envelope's ``data``.

        Raises:
            ApiError: On HTTP errors, envelope errors or connection failures.
        """
        try:
            response = await self._client.request(method, url, json=json, params=params)

            try:
                body = response.json()
            except ValueError:
                body = None

            if response.status_code >= 400:
                detail = ""
                if isinstance(body, dict):
                    detail = str(body.get("message") or body.get("detail") or body)
                else:
                    detail = response.text[:200]
                raise ApiError(
                    f"{method} {url} returned {response.status_code}: {detail}",
                    status_code=response.status_code,
                    detail=detail,
                )

            if not isinstance(body, dict):
                raise ApiError(
                    f"{method} {url} returned an invalid body",
                    status_code=response.status_code,
                    detail=response.text[:200],
                )

            code = body.get("code", response.status_code)
            if isinstance(code, int) and code >= 400:
                message = str(body.get("message", ""))
                raise ApiError(message or f"{method} {url} failed", status_code=code, detail=message)

            return body.get("data")

        except httpx.ConnectError as e:
            raise ApiError(f"Cannot connect to server: {e}", detail=str(e)) from e
        except httpx.TimeoutException as e:
            raise ApiError(f"Request timed out: {method} {url}", detail=str(e)) from e
        except httpx.HTTPError as e:
            raise ApiError(f"Request failed: {e}", detail=str(e)) from e

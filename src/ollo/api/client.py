"""Async HTTP client for the Ollo API.

:class:`OlloClient` implements the three boundaries the generation core
consumes:

========  ==================  ==========================================
Method    Path                Purpose
========  ==================  ==========================================
POST      ``/api/generate``   Run one generation, resolves when finished
GET       ``/api/models``     Model catalogue with average durations
POST      ``/api/uploads``    Upload one prepared reference image
========  ==================  ==========================================

Transport failures and non-2xx responses are raised as
:class:`~ollo.core.errors.NetworkError`; the queue manager and the batch
pipeline turn them into visible state.  No call is retried.

Usage
-----
::

    async with OlloClient() as client:
        model_registry.update(await client.fetch_models())
        manager = GenerationQueueManager(client.generate, upload=client.upload)
"""

from __future__ import annotations

import logging
from types import TracebackType

import httpx
from pydantic import ValidationError

from ollo.core.config import OlloConfig, config
from ollo.core.errors import NetworkError
from ollo.core.media import MediaFile
from ollo.core.model_registry import ModelDescriptor

from .models import GenerateRequest, GenerateResponse, UploadResponse

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Pull the ``error`` field out of an error response, if there is one."""
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return fallback


class OlloClient:
    """Thin async wrapper around the Ollo REST API.

    Args:
        settings: Configuration providing base URL, token and timeout
            (global config if None)
        http_client: Pre-built ``httpx.AsyncClient``; used as-is and not
            closed by :meth:`aclose` (tests pass one with a mock transport)
    """

    def __init__(
        self,
        settings: OlloConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or config
        self._owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(
                base_url=self.settings.api_base_url,
                timeout=self.settings.request_timeout,
            )
        self._http = http_client

    def _headers(self, json_body: bool = True) -> dict[str, str]:
        headers: dict[str, str] = {}
        if json_body:
            headers["Content-Type"] = "application/json"
        if self.settings.api_token:
            headers["Authorization"] = f"Bearer {self.settings.api_token}"
        return headers

    async def _request(self, method: str, url: str, fallback: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(str(e) or fallback) from e

        if response.is_error:
            message = _error_message(response, fallback)
            logger.warning(f"{method} {url} returned {response.status_code}: {message}")
            raise NetworkError(message)
        return response

    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        """Run a generation and return the provider's final response.

        Raises:
            NetworkError: On transport failure, a non-2xx status, or an
                unparseable body
        """
        response = await self._request(
            "POST",
            "/api/generate",
            "Generation failed",
            json=request.to_wire(),
            headers=self._headers(),
        )
        try:
            return GenerateResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise NetworkError(f"Invalid generate response: {e}") from e

    async def fetch_models(self) -> list[ModelDescriptor]:
        """Fetch the model catalogue including average generation times."""
        response = await self._request("GET", "/api/models", "Failed to fetch models")
        try:
            data = response.json()
            return [ModelDescriptor.model_validate(m) for m in data.get("models", [])]
        except (ValueError, AttributeError, ValidationError) as e:
            raise NetworkError(f"Invalid models response: {e}") from e

    async def upload(self, file: MediaFile) -> UploadResponse:
        """Upload one prepared image as multipart field ``file``."""
        response = await self._request(
            "POST",
            "/api/uploads",
            "Upload failed",
            files={"file": (file.name, file.content, file.mime_type or "application/octet-stream")},
            headers=self._headers(json_body=False),
        )
        try:
            return UploadResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise NetworkError(f"Invalid upload response: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> OlloClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

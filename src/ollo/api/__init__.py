"""Wire models, request builders and the HTTP client for the Ollo API."""

from ollo.api.models import (
    CreationOptions,
    GenerateRequest,
    GenerateResponse,
    UploadResponse,
)

__all__ = [
    "CreationOptions",
    "GenerateRequest",
    "GenerateResponse",
    "UploadResponse",
]

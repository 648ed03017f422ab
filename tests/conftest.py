"""Shared pytest fixtures for Ollo tests."""

import asyncio
import io
import random
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

from ollo.api.models import GenerateRequest, GenerateResponse, UploadResponse
from ollo.core.config import OlloConfig
from ollo.core.media import MediaFile
from ollo.core.model_registry import ModelDescriptor, ModelRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config() -> OlloConfig:
    """Configuration with defaults only (no .env, no OLLO_ overrides)."""
    return OlloConfig(_env_file=None, api_base_url="http://test", api_token="secret")


@pytest.fixture
def tiny_budget_config() -> OlloConfig:
    """Configuration whose byte budget forces every real image through resize."""
    return OlloConfig(_env_file=None, size_budget_bytes=1000)


@pytest.fixture
def registry() -> ModelRegistry:
    """Registry with two models of known duration (10 s and 5 s with buffer)."""
    return ModelRegistry(
        [
            ModelDescriptor(id="slow/model", name="Slow", avg_generation_time=7),
            ModelDescriptor(id="fast/model", name="Fast", avg_generation_time=2),
            ModelDescriptor(
                id="edit/model",
                name="Edit",
                category="edit",
                supports_image_input=True,
                max_images=2,
            ),
        ]
    )


def make_image_bytes(
    size: tuple[int, int] = (64, 48),
    fmt: str = "PNG",
    color: tuple[int, int, int] = (200, 100, 50),
) -> bytes:
    """Encode a solid-colour image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_noise_bytes(size: tuple[int, int] = (300, 200), fmt: str = "PNG") -> bytes:
    """Encode a deterministic noise image that compresses badly."""
    width, height = size
    pixels = random.Random(0).randbytes(width * height * 3)
    buffer = io.BytesIO()
    Image.frombytes("RGB", size, pixels).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def small_png() -> MediaFile:
    return MediaFile(name="small.png", content=make_image_bytes(), mime_type="image/png")


class FakeGenerate:
    """Stand-in for the ``generate`` call.

    Responses are keyed by prompt; a prompt with a gate blocks until the gate
    is opened, which lets tests control completion order.
    """

    def __init__(self) -> None:
        self.calls: list[GenerateRequest] = []
        self.responses: dict[str, GenerateResponse | Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}

    def gate(self, prompt: str) -> asyncio.Event:
        self.gates[prompt] = asyncio.Event()
        return self.gates[prompt]

    async def __call__(self, request: GenerateRequest) -> GenerateResponse:
        self.calls.append(request)
        gate = self.gates.get(request.prompt)
        if gate is not None:
            await gate.wait()
        result = self.responses.get(
            request.prompt, GenerateResponse(id=f"pred-{len(self.calls)}", status="succeeded")
        )
        if isinstance(result, Exception):
            raise result
        return result


class FakeUpload:
    """Stand-in for the upload call; fails for names listed in ``fail``."""

    def __init__(self, fail: tuple[str, ...] = ()) -> None:
        self.fail = fail
        self.uploaded: list[MediaFile] = []

    async def __call__(self, file: MediaFile) -> UploadResponse:
        if file.name in self.fail:
            raise ConnectionError("connection reset")
        self.uploaded.append(file)
        return UploadResponse(image_url=f"https://cdn.test/uploads/{file.name}")


@pytest.fixture
def fake_generate() -> FakeGenerate:
    return FakeGenerate()


@pytest.fixture
def fake_upload() -> FakeUpload:
    return FakeUpload()


async def settle(rounds: int = 5) -> None:
    """Let pending tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)

"""Image preprocessing before upload.

User-supplied reference images arrive in whatever shape the user's device
produced: phone photos in HEIC/HEIF, 40 MB camera originals, screenshots.
Before upload every file goes through the same pipeline:

1. **Format check** - HEIC/HEIF is detected from the file name or declared
   mime type only; byte content is never sniffed.
2. **Conversion** - HEIC/HEIF is decoded with ``pillow-heif`` and re-encoded
   as PNG.
3. **Resize** - files above the byte budget (5 MiB) are decoded, scaled so
   the longer side is at most 2048 px, and re-encoded as JPEG with a quality
   back-off (0.85, 0.75, 0.65, 0.55) until the output fits.
4. **Upload** - the caller-supplied upload coroutine returns an image URL.

The resize step is best effort: if the lowest quality still exceeds the
budget, the last attempt is returned anyway and a warning is logged.

Decoding and encoding run in worker threads through ``asyncio.to_thread`` so
that the event loop driving the generation queue stays responsive; the
preprocessor itself holds no shared state.

Usage Example
-------------
    >>> preprocessor = MediaPreprocessor()
    >>> file = MediaFile.from_path(Path("IMG_0001.HEIC"))
    >>> ready = await preprocessor.prepare(file)
    >>> result = await preprocessor.process_batch([file], client.upload)
    >>> result.image_urls
    ['https://.../uploads/abc.png']
"""

from __future__ import annotations

import asyncio
import io
import logging
import mimetypes
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from .config import OlloConfig, config
from .errors import ConversionError, ResizeError

logger = logging.getLogger(__name__)

LEGACY_EXTENSIONS = (".heic", ".heif")
LEGACY_MIME_TYPES = ("image/heic", "image/heif")

LegacyDecoder = Callable[[bytes, float], bytes]
UploadFn = Callable[["MediaFile"], Awaitable[Any]]


@dataclass(frozen=True)
class MediaFile:
    """An in-memory file as selected by the user.

    Attributes:
        name: Original file name including extension
        content: Raw bytes
        mime_type: Declared mime type (may be empty, as browsers often leave
            it for HEIC files)
    """

    name: str
    content: bytes = field(repr=False)
    mime_type: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return PurePath(self.name).suffix.lower()

    @classmethod
    def from_path(cls, path: Path, mime_type: str | None = None) -> MediaFile:
        """Read a file from disk, guessing the mime type from its name."""
        if mime_type is None:
            guessed, _ = mimetypes.guess_type(path.name)
            mime_type = guessed or ""
        return cls(name=path.name, content=path.read_bytes(), mime_type=mime_type)


@dataclass
class ResizeResult:
    """Outcome of :meth:`MediaPreprocessor.resize_if_needed`.

    ``qualities`` lists every JPEG quality attempted, in order; it is empty
    when no resize happened.
    """

    blob: bytes = field(repr=False)
    resized: bool
    original_size: int
    new_size: int
    width: int | None = None
    height: int | None = None
    qualities: list[float] = field(default_factory=list)
    within_budget: bool = True


@dataclass(frozen=True)
class BatchItemError:
    """One file that was skipped in a batch."""

    filename: str
    message: str


@dataclass
class BatchResult:
    """Outcome of :meth:`MediaPreprocessor.process_batch`."""

    image_urls: list[str] = field(default_factory=list)
    errors: list[BatchItemError] = field(default_factory=list)

    @property
    def error_message(self) -> str | None:
        """Joined error text for display, or None if every file succeeded."""
        if not self.errors:
            return None
        return ", ".join(e.message for e in self.errors)


def _format_mb(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}MB"


def is_legacy_format(file: MediaFile) -> bool:
    """Check whether ``file`` is HEIC/HEIF by extension or declared mime type."""
    return file.extension in LEGACY_EXTENSIONS or file.mime_type.lower() in LEGACY_MIME_TYPES


def is_image_file(file: MediaFile) -> bool:
    """Images are anything declared ``image/*`` plus HEIC/HEIF by name."""
    return file.mime_type.lower().startswith("image/") or is_legacy_format(file)


def calculate_dimensions(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Scale ``(width, height)`` so the longer side is at most ``max_dimension``.

    Dimensions already within the limit are returned unchanged.
    """
    if width <= max_dimension and height <= max_dimension:
        return width, height

    ratio = min(max_dimension / width, max_dimension / height)
    return round(width * ratio), round(height * ratio)


def decode_heif_to_png(content: bytes, quality: float) -> bytes:
    """Decode HEIC/HEIF bytes and re-encode them as PNG.

    ``quality`` is kept for lossy targets; the PNG encoder is lossless and
    ignores it.
    """
    register_heif_opener()
    with Image.open(io.BytesIO(content)) as image:
        image = ImageOps.exif_transpose(image)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    return buffer.getvalue()


def blob_to_file(result: ResizeResult, original: MediaFile) -> MediaFile:
    """Wrap a resized JPEG blob in a file named after the original."""
    name = str(PurePath(original.name).with_suffix(".jpg"))
    return MediaFile(name=name, content=result.blob, mime_type="image/jpeg")


class MediaPreprocessor:
    """Normalize user images into upload-ready files.

    Args:
        settings: Configuration supplying the byte budget, dimension cap and
            quality schedule (global config if None)
        legacy_decoder: Callable ``(content, quality) -> png_bytes`` used for
            HEIC/HEIF conversion (``decode_heif_to_png`` if None)
    """

    def __init__(
        self,
        settings: OlloConfig | None = None,
        legacy_decoder: LegacyDecoder | None = None,
    ) -> None:
        self.settings = settings or config
        self._legacy_decoder = legacy_decoder or decode_heif_to_png

    @property
    def size_budget(self) -> int:
        return self.settings.size_budget_bytes

    def is_legacy_format(self, file: MediaFile) -> bool:
        return is_legacy_format(file)

    def needs_resize(self, file: MediaFile) -> bool:
        """True iff the file is larger than the byte budget."""
        return file.size > self.size_budget

    async def convert_legacy_to_standard(self, file: MediaFile) -> MediaFile:
        """Convert HEIC/HEIF to PNG; other files are returned unchanged.

        Raises:
            ConversionError: If the decoder fails.  No output exists then.
        """
        if not is_legacy_format(file):
            return file

        logger.info(f"Converting HEIC to PNG: {file.name}")
        try:
            png_bytes = await asyncio.to_thread(
                self._legacy_decoder, file.content, self.settings.legacy_conversion_quality
            )
        except Exception as e:
            raise ConversionError(f"Failed to convert {file.name}: {e}") from e

        new_name = str(PurePath(file.name).with_suffix(".png"))
        converted = MediaFile(name=new_name, content=png_bytes, mime_type="image/png")
        logger.info(f"Converted: {file.name} → {new_name} ({_format_mb(converted.size)})")
        return converted

    async def resize_if_needed(self, file: MediaFile) -> ResizeResult:
        """Downscale and re-encode ``file`` if it exceeds the byte budget.

        Files within the budget are returned byte-identical with
        ``resized=False``.  Otherwise the image is scaled so the longer side
        is at most ``max_dimension`` (dimensions within the cap are kept) and
        JPEG-encoded with a descending quality schedule.  The loop stops at
        the first attempt within budget, or when the next quality would fall
        below the floor; in the latter case the last attempt is returned even
        though it is over budget.

        Raises:
            ResizeError: If the image cannot be decoded or rendered.
        """
        original_size = file.size

        if not self.needs_resize(file):
            return ResizeResult(
                blob=file.content,
                resized=False,
                original_size=original_size,
                new_size=original_size,
            )

        logger.info(f"Resizing image: {file.name} ({_format_mb(original_size)})")

        image = await asyncio.to_thread(self._render, file)

        blob = b""
        qualities: list[float] = []
        quality = self.settings.initial_quality
        while True:
            qualities.append(quality)
            blob = await asyncio.to_thread(self._encode, image, quality, file.name)
            if len(blob) <= self.size_budget:
                break

            # Rounded so repeated subtraction does not drift past the floor.
            next_quality = round(quality - self.settings.quality_step, 2)
            if next_quality < self.settings.quality_floor:
                break
            quality = next_quality

        within_budget = len(blob) <= self.size_budget
        if not within_budget:
            logger.warning(
                f"Resized {file.name} is still over budget at quality {quality}: "
                f"{_format_mb(len(blob))} > {_format_mb(self.size_budget)}"
            )

        logger.info(
            f"Resized: {image.width}x{image.height}, {_format_mb(len(blob))} "
            f"(was {_format_mb(original_size)})"
        )

        return ResizeResult(
            blob=blob,
            resized=True,
            original_size=original_size,
            new_size=len(blob),
            width=image.width,
            height=image.height,
            qualities=qualities,
            within_budget=within_budget,
        )

    def _render(self, file: MediaFile) -> Image.Image:
        """Decode ``file`` and scale it to the target dimensions."""
        try:
            with Image.open(io.BytesIO(file.content)) as source:
                source = ImageOps.exif_transpose(source)
                width, height = calculate_dimensions(
                    source.width, source.height, self.settings.max_dimension
                )
                rgb = source.convert("RGB")
        except (Image.DecompressionBombError, UnidentifiedImageError, OSError, ValueError) as e:
            raise ResizeError(f"Failed to load image {file.name}: {e}") from e

        if (width, height) == rgb.size:
            return rgb
        return rgb.resize((width, height), Image.Resampling.LANCZOS)

    @staticmethod
    def _encode(image: Image.Image, quality: float, name: str) -> bytes:
        buffer = io.BytesIO()
        try:
            image.save(buffer, format="JPEG", quality=round(quality * 100), optimize=True)
        except (OSError, ValueError) as e:
            raise ResizeError(f"Failed to resize image {name}: {e}") from e
        return buffer.getvalue()

    async def prepare(self, file: MediaFile) -> MediaFile:
        """Run conversion and resize for a single file.

        Raises:
            ConversionError: If HEIC/HEIF conversion fails
            ResizeError: If the image cannot be resized
        """
        converted = await self.convert_legacy_to_standard(file)
        result = await self.resize_if_needed(converted)
        if result.resized:
            return blob_to_file(result, converted)
        return converted

    async def process_batch(
        self,
        files: Iterable[MediaFile],
        upload: UploadFn,
        *,
        max_images: int | None = None,
    ) -> BatchResult:
        """Prepare and upload ``files`` one after another.

        Non-image files are skipped silently.  A file that fails conversion,
        resize or upload is recorded in ``errors`` and skipped; the remaining
        files are still processed.  Processing stops once ``max_images``
        files have been uploaded.

        Args:
            files: Files in the order the user selected them
            upload: Coroutine function returning an object with ``image_url``
            max_images: Upper bound on uploaded files (None for no limit)

        Returns:
            BatchResult with uploaded URLs and per-file errors
        """
        result = BatchResult()

        for file in files:
            if not is_image_file(file):
                logger.debug(f"Skipping non-image file: {file.name}")
                continue
            if max_images is not None and len(result.image_urls) >= max_images:
                logger.info(f"Reached the limit of {max_images} images, skipping the rest")
                break

            try:
                ready = await self.prepare(file)
            except ConversionError as e:
                logger.error(f"HEIC conversion failed: {e}")
                result.errors.append(BatchItemError(file.name, f"Failed to convert {file.name}"))
                continue
            except ResizeError as e:
                logger.error(f"Resize failed: {e}")
                result.errors.append(BatchItemError(file.name, f"Failed to resize {file.name}"))
                continue

            try:
                uploaded = await upload(ready)
                image_url = uploaded.image_url
            except Exception as e:
                logger.error(f"Upload failed for {file.name}: {e}")
                result.errors.append(BatchItemError(file.name, f"Failed to upload {file.name}"))
                continue

            result.image_urls.append(image_url)

        return result

"""Pydantic request and response models for the Ollo API boundary.

These models define the JSON shapes exchanged with the three external
endpoints the generation core consumes.  The wire format uses camelCase keys
(``imageInputs``, ``aspectRatio``, ``imageUrl`` ...); the Python attributes are
snake_case and the aliases are generated automatically.

Models
------
CreationOptions
    The single configuration struct for the image-input model options
    (aspect ratio, resolution, output format) with documented defaults.
GenerateRequest
    Payload for ``POST /api/generate``.
GenerateResponse
    Result of ``POST /api/generate``.  Only ``status == "succeeded"`` counts
    as success; any other value is an application-level failure.
UploadResponse
    Result of ``POST /api/uploads``.
"""

from __future__ import annotations

from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AspectRatio = Literal[
    "match_input_image",
    "1:1",
    "2:3",
    "3:2",
    "3:4",
    "4:3",
    "4:5",
    "5:4",
    "9:16",
    "16:9",
    "21:9",
]
Resolution = Literal["1K", "2K", "4K"]
OutputFormat = Literal["png", "jpg"]

ASPECT_RATIOS: tuple[str, ...] = get_args(AspectRatio)
RESOLUTIONS: tuple[str, ...] = get_args(Resolution)
OUTPUT_FORMATS: tuple[str, ...] = get_args(OutputFormat)

MATCH_INPUT_IMAGE = "match_input_image"
SUCCEEDED = "succeeded"


class WireModel(BaseModel):
    """Base model using camelCase aliases on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Serialise to the JSON body the API expects (camelCase, no nulls)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CreationOptions(WireModel):
    """Options recognised by image-input models.

    Attributes:
        aspect_ratio: One of :data:`ASPECT_RATIOS`.  ``match_input_image``
            keeps the aspect ratio of the first reference image.
        resolution: ``1K``, ``2K`` or ``4K``.
        output_format: ``png`` or ``jpg``.
    """

    aspect_ratio: AspectRatio = Field(
        default=MATCH_INPUT_IMAGE,
        description="Aspect ratio token, or 'match_input_image'.",
    )
    resolution: Resolution = Field(
        default="2K",
        description="Output resolution tier.",
    )
    output_format: OutputFormat = Field(
        default="png",
        description="Output image format.",
    )


class GenerateRequest(WireModel):
    """Request body for ``POST /api/generate``.

    Attributes:
        prompt: Text prompt.  May be empty for variation models.
        model: Model identifier (e.g. ``black-forest-labs/flux-schnell``).
        image_inputs: Reference image URLs returned by the upload endpoint.
        aspect_ratio: Aspect ratio token (image-input models only).
        resolution: Resolution tier (image-input models only).
        output_format: Output format (image-input models only).
        num_outputs: Number of images to produce.
        seed: Random seed.
        thread_id: Conversation thread the result should be attached to.
        width: Requested width for models that take explicit dimensions.
        height: Requested height for models that take explicit dimensions.
    """

    prompt: str = Field(default="", description="Text prompt.")
    model: str = Field(..., description="Model identifier.")
    image_inputs: list[str] | None = Field(
        default=None,
        description="Reference image URLs.",
    )
    aspect_ratio: AspectRatio | None = None
    resolution: Resolution | None = None
    output_format: OutputFormat | None = None
    num_outputs: int | None = Field(default=None, ge=1, le=4)
    seed: int | None = Field(default=None, ge=0)
    thread_id: str | None = None
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)

    def with_options(self, options: CreationOptions) -> GenerateRequest:
        """Return a copy with the creation options applied."""
        return self.model_copy(
            update={
                "aspect_ratio": options.aspect_ratio,
                "resolution": options.resolution,
                "output_format": options.output_format,
            }
        )

    def with_image_inputs(self, urls: list[str]) -> GenerateRequest:
        """Return a copy with ``urls`` appended to the reference images."""
        existing = list(self.image_inputs or [])
        existing.extend(url for url in urls if url not in existing)
        return self.model_copy(update={"image_inputs": existing or None})


class GeneratedImage(WireModel):
    """One image produced by a successful generation."""

    id: str
    url: str
    cost: float | None = None


class GenerateResponse(WireModel):
    """Result of ``POST /api/generate``.

    ``status`` is kept as a free string: the provider reports ``starting``,
    ``processing``, ``succeeded`` or ``failed``, and anything but
    ``succeeded`` is treated as a failure by the queue manager.
    """

    id: str = ""
    status: str
    images: list[GeneratedImage] | None = None
    cost: float | None = None
    error: str | None = None
    thread_id: str | None = None

    @property
    def succeeded(self) -> bool:
        """True only for the explicit ``succeeded`` status."""
        return self.status == SUCCEEDED


class UploadResponse(WireModel):
    """Result of ``POST /api/uploads``."""

    image_url: str = Field(..., description="Stable URL of the uploaded image.")
    id: str | None = None
    filename: str | None = None
    original_name: str | None = None

"""Request assembly for the different create actions.

All create actions (new prompt, variations, upscale) produce a
:class:`GenerateRequest`; this module keeps the per-action rules in one place
instead of building ad hoc request shapes at every call site.
"""

from __future__ import annotations

import random

from ollo.core.model_registry import ModelRegistry, model_registry

from .models import CreationOptions, GenerateRequest

VARIATION_MODEL = "black-forest-labs/flux-redux-dev"
UPSCALE_MODEL = "google/nano-banana-pro"
VARIATION_OUTPUTS = 4
MAX_RANDOM_SEED = 2147483647


def build_generate_request(
    prompt: str,
    model: str,
    *,
    image_inputs: list[str] | None = None,
    options: CreationOptions | None = None,
    thread_id: str | None = None,
    registry: ModelRegistry | None = None,
) -> GenerateRequest:
    """Build the request for a normal create action.

    Reference images and creation options are only sent to models that
    accept image input.  Variation models ignore the prompt and always
    produce four outputs.
    """
    registry = registry or model_registry
    supports_images = registry.supports_image_input(model)
    is_variation = registry.is_variation_model(model)

    request = GenerateRequest(
        prompt="" if is_variation else prompt,
        model=model,
        image_inputs=(image_inputs or None) if supports_images else None,
        thread_id=thread_id,
        num_outputs=VARIATION_OUTPUTS if is_variation else None,
    )
    if supports_images:
        request = request.with_options(options or CreationOptions())
    return request


def display_prompt(request: GenerateRequest, registry: ModelRegistry | None = None) -> str:
    """Text shown for a queued job."""
    registry = registry or model_registry
    if registry.is_variation_model(request.model):
        return f"Generating {request.num_outputs or VARIATION_OUTPUTS} variations"
    return request.prompt


def build_variation_request(
    prompt: str,
    image_url: str,
    *,
    thread_id: str | None = None,
    seed: int | None = None,
) -> GenerateRequest:
    """Four variations of an existing image with a fresh random seed."""
    return GenerateRequest(
        prompt=prompt,
        model=VARIATION_MODEL,
        image_inputs=[image_url],
        num_outputs=VARIATION_OUTPUTS,
        seed=seed if seed is not None else random.randint(0, MAX_RANDOM_SEED),
        thread_id=thread_id,
    )


def build_upscale_request(
    prompt: str,
    image_url: str,
    *,
    options: CreationOptions | None = None,
    thread_id: str | None = None,
) -> GenerateRequest:
    """Re-render an existing image at 4K, keeping the chosen ratio and format."""
    options = options or CreationOptions()
    return GenerateRequest(
        prompt=prompt,
        model=UPSCALE_MODEL,
        image_inputs=[image_url],
        aspect_ratio=options.aspect_ratio,
        resolution="4K",
        output_format=options.output_format,
        thread_id=thread_id,
    )

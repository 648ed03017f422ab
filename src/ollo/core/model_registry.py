"""Registry of generation models and their timing statistics.

The generation queue never talks to the models directly; it only needs to know
how long a model usually takes so that it can show a progress estimate.  The
registry holds one :class:`ModelDescriptor` per model id, populated either from
the built-in catalogue or from the ``GET /api/models`` listing, which merges in
the server-side average ``predict_time`` per model.

Usage Example
-------------
    >>> from ollo.core.model_registry import model_registry
    >>> model_registry.estimated_duration("black-forest-labs/flux-schnell")
    33.0
    >>> model_registry.update(await client.fetch_models())

See Also
--------
- GenerationQueueManager: consumer of estimated durations
- OlloClient.fetch_models: source of live statistics
"""

import logging
from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import config

logger = logging.getLogger(__name__)

ModelCategory = Literal["fast", "quality", "ultra", "variation", "edit", "external"]


class ModelDescriptor(BaseModel):
    """Description of one generation model.

    Attributes
    ----------
    id : str
        Provider model identifier (``owner/name``)
    name : str
        Human-readable name
    category : str | None
        Catalogue category; ``variation`` models ignore the prompt
    supports_image_input : bool
        Whether reference images can be attached
    max_images : int
        Maximum reference images the model accepts
    avg_generation_time : float | None
        Average completion time in seconds, None when no statistics exist
    sample_count : int
        Number of generations the average was computed from
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    description: str = ""
    category: ModelCategory | None = None
    supports_image_input: bool = False
    max_images: int = Field(default=0, ge=0)
    avg_generation_time: float | None = Field(default=None, ge=0)
    sample_count: int = Field(default=0, ge=0)


# Catalogue of known models, used until live statistics are fetched.
DEFAULT_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(id="black-forest-labs/flux-schnell", name="FLUX.1 Schnell", category="fast"),
    ModelDescriptor(
        id="black-forest-labs/flux-2-dev",
        name="FLUX 2 Dev",
        category="fast",
        supports_image_input=True,
        max_images=5,
    ),
    ModelDescriptor(id="black-forest-labs/flux-dev", name="FLUX.1 Dev", category="quality"),
    ModelDescriptor(id="black-forest-labs/flux-1.1-pro", name="FLUX 1.1 Pro", category="quality"),
    ModelDescriptor(
        id="black-forest-labs/flux-2-pro",
        name="FLUX 2 Pro",
        category="quality",
        supports_image_input=True,
        max_images=8,
    ),
    ModelDescriptor(
        id="black-forest-labs/flux-1.1-pro-ultra",
        name="FLUX 1.1 Pro Ultra",
        category="ultra",
        supports_image_input=True,
        max_images=1,
    ),
    ModelDescriptor(
        id="black-forest-labs/flux-redux-schnell",
        name="FLUX Redux Schnell",
        category="variation",
        supports_image_input=True,
        max_images=1,
    ),
    ModelDescriptor(
        id="black-forest-labs/flux-redux-dev",
        name="FLUX Redux Dev",
        category="variation",
        supports_image_input=True,
        max_images=1,
    ),
    ModelDescriptor(
        id="black-forest-labs/flux-kontext-pro",
        name="FLUX Kontext Pro",
        category="edit",
        supports_image_input=True,
        max_images=1,
    ),
    ModelDescriptor(
        id="google/nano-banana-pro",
        name="Nano Banana Pro",
        category="external",
        supports_image_input=True,
        max_images=14,
    ),
)


class ModelRegistry:
    """Registry mapping model ids to :class:`ModelDescriptor` records.

    Notes
    -----
    - Unknown model ids are not an error: lookups return None and duration
      estimates fall back to ``default_generation_time``
    - Re-registering an id replaces the previous descriptor
    """

    def __init__(self, models: Iterable[ModelDescriptor] = ()) -> None:
        self._models: dict[str, ModelDescriptor] = {}
        for model in models:
            self.register(model)

    def register(self, model: ModelDescriptor) -> None:
        """Register or replace a model descriptor."""
        if model.id in self._models:
            logger.debug(f"Model '{model.id}' is already registered, overwriting")
        self._models[model.id] = model

    def update(self, models: Iterable[ModelDescriptor]) -> None:
        """Merge a fetched model listing into the registry."""
        count = 0
        for model in models:
            self.register(model)
            count += 1
        logger.info(f"Model registry updated with {count} models")

    def lookup(self, model_id: str) -> ModelDescriptor | None:
        """Return the descriptor for ``model_id`` or None if unknown."""
        return self._models.get(model_id)

    def list_available(self) -> list[str]:
        """List all registered model ids."""
        return list(self._models.keys())

    def get_models_by_category(self, category: str) -> list[ModelDescriptor]:
        """Return every model in ``category``."""
        return [m for m in self._models.values() if m.category == category]

    def supports_image_input(self, model_id: str) -> bool:
        model = self.lookup(model_id)
        return model.supports_image_input if model else False

    def is_variation_model(self, model_id: str) -> bool:
        """Variation (Redux) models ignore the prompt."""
        model = self.lookup(model_id)
        return model is not None and model.category == "variation"

    def max_images(self, model_id: str, default: int | None = None) -> int:
        """Maximum reference images for ``model_id``.

        Unknown models and models without a limit fall back to ``default``
        (config ``max_reference_images`` if None).
        """
        if default is None:
            default = config.max_reference_images

        model = self.lookup(model_id)
        if model is None or not model.max_images:
            return default
        return model.max_images

    def estimated_duration(
        self,
        model_id: str,
        default: float | None = None,
        buffer: float | None = None,
    ) -> float:
        """Estimate how long a generation on ``model_id`` will take.

        Args:
            model_id: Model identifier
            default: Average used when the model has no statistics
                (config ``default_generation_time`` if None)
            buffer: Seconds added on top of the average
                (config ``duration_buffer`` if None)

        Returns:
            Estimated duration in seconds
        """
        if default is None:
            default = config.default_generation_time
        if buffer is None:
            buffer = config.duration_buffer

        model = self.lookup(model_id)
        # A zero or missing average falls back to the default.
        average = model.avg_generation_time if model and model.avg_generation_time else default
        return float(average) + buffer


# Global model registry instance, seeded with the built-in catalogue
model_registry = ModelRegistry(DEFAULT_MODELS)

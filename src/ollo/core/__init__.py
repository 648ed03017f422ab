"""Core functionality of the Ollo generation client.

- **GenerationQueueManager**: tracks concurrent jobs with at-most-one
  ``generate`` call per job id
- **ProgressTicker** and the progress curves: client-side progress estimates
- **MediaPreprocessor**: HEIC conversion and resize-to-budget before upload
- **ModelRegistry**: per-model average durations
- **OlloConfig**: configuration using Pydantic Settings (``OLLO_`` prefix)
"""

from ollo.core.config import OlloConfig, config
from ollo.core.errors import (
    ApplicationError,
    ConversionError,
    NetworkError,
    OlloError,
    ResizeError,
)
from ollo.core.media import MediaFile, MediaPreprocessor, ResizeResult
from ollo.core.model_registry import ModelDescriptor, ModelRegistry
from ollo.core.progress import ProgressPolicy, ProgressTicker, estimate_progress
from ollo.core.queue import GenerationQueueManager, QueuedGeneration, QueueStore

__all__ = [
    "ApplicationError",
    "ConversionError",
    "GenerationQueueManager",
    "MediaFile",
    "MediaPreprocessor",
    "ModelDescriptor",
    "ModelRegistry",
    "NetworkError",
    "OlloConfig",
    "OlloError",
    "ProgressPolicy",
    "ProgressTicker",
    "QueueStore",
    "QueuedGeneration",
    "ResizeError",
    "ResizeResult",
    "config",
    "estimate_progress",
]

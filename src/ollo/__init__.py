"""Ollo generation core - concurrent generation queue, progress and image preprocessing."""

__version__ = "0.1.0"

from ollo.core.config import OlloConfig, config
from ollo.core.model_registry import ModelDescriptor, model_registry
from ollo.core.queue import GenerationQueueManager, QueuedGeneration

__all__ = [
    "GenerationQueueManager",
    "ModelDescriptor",
    "OlloConfig",
    "QueuedGeneration",
    "config",
    "model_registry",
]

"""Tests for ollo.core.model_registry."""

from __future__ import annotations

import sys

import pytest

import ollo.core
from ollo.core.config import config
from ollo.core.model_registry import DEFAULT_MODELS, ModelDescriptor, ModelRegistry, model_registry


class TestEstimatedDuration:
    def test_unknown_model_uses_default_plus_buffer(self, registry):
        assert registry.estimated_duration("nobody/model", default=30, buffer=3) == 33.0

    def test_average_plus_buffer(self, registry):
        assert registry.estimated_duration("slow/model", default=30, buffer=3) == 10.0
        assert registry.estimated_duration("fast/model", default=30, buffer=3) == 5.0

    def test_zero_average_falls_back(self):
        registry = ModelRegistry([ModelDescriptor(id="new/model", avg_generation_time=0)])
        assert registry.estimated_duration("new/model", default=30, buffer=0) == 30.0

    def test_config_defaults(self, monkeypatch):
        monkeypatch.setattr(config, "default_generation_time", 20.0)
        monkeypatch.setattr(config, "duration_buffer", 1.0)
        assert ModelRegistry().estimated_duration("anything") == 21.0


class TestLookup:
    def test_lookup_unknown_is_none(self, registry):
        assert registry.lookup("missing") is None

    def test_update_replaces_statistics(self, registry):
        registry.update([ModelDescriptor(id="slow/model", name="Slow", avg_generation_time=12)])
        assert registry.lookup("slow/model").avg_generation_time == 12
        assert registry.estimated_duration("slow/model", default=30, buffer=3) == 15.0

    def test_list_available_keeps_order(self, registry):
        assert registry.list_available() == ["slow/model", "fast/model", "edit/model"]

    def test_get_models_by_category(self, registry):
        assert [m.id for m in registry.get_models_by_category("edit")] == ["edit/model"]

    def test_descriptor_from_api_payload(self):
        model = ModelDescriptor.model_validate(
            {
                "id": "black-forest-labs/flux-schnell",
                "name": "FLUX.1 Schnell",
                "supportsImageInput": False,
                "avgGenerationTime": 2.4,
                "sampleCount": 17,
            }
        )
        assert model.avg_generation_time == 2.4
        assert model.sample_count == 17


class TestCapabilities:
    def test_image_input(self, registry):
        assert registry.supports_image_input("edit/model")
        assert not registry.supports_image_input("slow/model")
        assert not registry.supports_image_input("missing")

    def test_max_images(self, registry, monkeypatch):
        monkeypatch.setattr(config, "max_reference_images", 14)
        assert registry.max_images("edit/model") == 2
        assert registry.max_images("slow/model") == 14
        assert registry.max_images("missing") == 14

    def test_max_images_explicit_default(self, registry):
        assert registry.max_images("missing", default=3) == 3
        assert registry.max_images("slow/model", default=3) == 3
        assert registry.max_images("edit/model", default=3) == 2

    def test_submodule_not_shadowed_by_package_exports(self):
        assert ollo.core.model_registry is sys.modules["ollo.core.model_registry"]

    @pytest.mark.parametrize(
        "model_id,expected",
        [
            ("black-forest-labs/flux-redux-dev", True),
            ("black-forest-labs/flux-redux-schnell", True),
            ("black-forest-labs/flux-schnell", False),
            ("unknown/model", False),
        ],
    )
    def test_variation_models(self, model_id, expected):
        assert model_registry.is_variation_model(model_id) is expected

    def test_default_catalogue(self):
        ids = {m.id for m in DEFAULT_MODELS}
        assert "google/nano-banana-pro" in ids
        assert model_registry.lookup("google/nano-banana-pro").max_images == 14

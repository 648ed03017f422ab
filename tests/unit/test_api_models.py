"""Tests for ollo.api.models: wire shapes for the generation API."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ollo.api.models import (
    ASPECT_RATIOS,
    CreationOptions,
    GenerateRequest,
    GenerateResponse,
    UploadResponse,
)


class TestCreationOptions:
    def test_defaults(self):
        options = CreationOptions()
        assert options.aspect_ratio == "match_input_image"
        assert options.resolution == "2K"
        assert options.output_format == "png"

    def test_known_ratios(self):
        assert ASPECT_RATIOS[0] == "match_input_image"
        assert {"1:1", "16:9", "21:9", "9:16"} <= set(ASPECT_RATIOS)

    def test_invalid_ratio_rejected(self):
        with pytest.raises(ValidationError):
            CreationOptions(aspect_ratio="7:3")

    def test_invalid_resolution_rejected(self):
        with pytest.raises(ValidationError):
            CreationOptions(resolution="8K")


class TestGenerateRequest:
    def test_wire_format_is_camel_case_without_nulls(self):
        request = GenerateRequest(
            prompt="a lighthouse",
            model="black-forest-labs/flux-2-dev",
            image_inputs=["https://cdn.test/a.png"],
            thread_id="t-1",
        ).with_options(CreationOptions(aspect_ratio="16:9"))

        assert request.to_wire() == {
            "prompt": "a lighthouse",
            "model": "black-forest-labs/flux-2-dev",
            "imageInputs": ["https://cdn.test/a.png"],
            "aspectRatio": "16:9",
            "resolution": "2K",
            "outputFormat": "png",
            "threadId": "t-1",
        }

    def test_accepts_camel_case_input(self):
        request = GenerateRequest.model_validate(
            {"model": "m", "imageInputs": ["u"], "numOutputs": 2}
        )
        assert request.image_inputs == ["u"]
        assert request.num_outputs == 2

    def test_model_required(self):
        with pytest.raises(ValidationError):
            GenerateRequest(prompt="x")

    def test_num_outputs_bounded(self):
        with pytest.raises(ValidationError):
            GenerateRequest(model="m", num_outputs=5)

    def test_with_image_inputs_appends_without_duplicates(self):
        request = GenerateRequest(model="m", image_inputs=["a"])
        updated = request.with_image_inputs(["a", "b", "b"])
        assert updated.image_inputs == ["a", "b"]
        assert request.image_inputs == ["a"]

    def test_with_no_image_inputs_stays_none(self):
        assert GenerateRequest(model="m").with_image_inputs([]).image_inputs is None


class TestResponses:
    @pytest.mark.parametrize(
        "status,expected",
        [("succeeded", True), ("failed", False), ("processing", False), ("", False)],
    )
    def test_only_succeeded_counts(self, status, expected):
        assert GenerateResponse(status=status).succeeded is expected

    def test_parses_camel_case_response(self):
        response = GenerateResponse.model_validate(
            {
                "id": "pred-1",
                "status": "succeeded",
                "images": [{"id": "img-1", "url": "https://cdn.test/out.png"}],
                "threadId": "t-1",
            }
        )
        assert response.images[0].url == "https://cdn.test/out.png"
        assert response.thread_id == "t-1"

    def test_upload_response(self):
        upload = UploadResponse.model_validate(
            {"imageUrl": "https://cdn.test/u.png", "originalName": "IMG.HEIC"}
        )
        assert upload.image_url == "https://cdn.test/u.png"
        assert upload.original_name == "IMG.HEIC"

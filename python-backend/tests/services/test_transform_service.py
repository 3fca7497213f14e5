"""
Tests for the transform orchestrator
"""

import io

import numpy as np
import pytest
from PIL import Image

from api.exceptions import (
    DecodeFailedException,
    EmptyCropException,
    EncodeFailedException,
    InvalidParametersException,
    PayloadTooLargeException,
    UnsupportedFormatException,
)
from core.editor import CropState
from core.enums import ErrorKind, OutputFormat, PipelineState
from schemas import (
    CropParams,
    OutputParams,
    ResizeParams,
    RotateFlipParams,
    TransformRequest,
)
from services.transform_service import TransformJob, TransformService


def decode(data):
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class TestTransformJob:
    """Test the per-request state machine"""

    def test_happy_path(self):
        job = TransformJob()
        for state in (
            PipelineState.VALIDATED,
            PipelineState.GEOMETRY_COMPUTED,
            PipelineState.COMPOSITED,
            PipelineState.ENCODED,
            PipelineState.DONE,
        ):
            job.advance(state)

        assert job.state is PipelineState.DONE
        assert job.is_terminal
        assert len(job.history) == 6

    def test_skipping_a_state_is_illegal(self):
        job = TransformJob()

        with pytest.raises(RuntimeError):
            job.advance(PipelineState.COMPOSITED)

    def test_fail_from_any_non_terminal_state(self):
        job = TransformJob()
        job.advance(PipelineState.VALIDATED)

        job.fail(DecodeFailedException("bad"))

        assert job.state is PipelineState.FAILED
        assert job.error.kind is ErrorKind.DECODE_FAILED

    def test_no_transition_after_terminal(self):
        job = TransformJob()
        job.fail(InvalidParametersException("bad"))

        with pytest.raises(RuntimeError):
            job.fail(InvalidParametersException("again"))
        with pytest.raises(RuntimeError):
            job.advance(PipelineState.VALIDATED)


class TestTransformService:
    """Test the transform pipeline end to end"""

    def test_resize_width_only(self, transform_service, landscape_payload):
        request = TransformRequest(
            resize=ResizeParams(width=500), output=OutputParams(format="png")
        )

        output = transform_service.process(landscape_payload, request)

        assert output.mime_type == "image/png"
        assert (output.width, output.height) == (500, 250)
        assert decode(output.data).size == (500, 250)

    def test_resize_box_png_transparent_padding(self, transform_service, landscape_payload):
        request = TransformRequest(
            resize=ResizeParams(width=400, height=400), output=OutputParams(format="png")
        )

        image = decode(transform_service.process(landscape_payload, request).data)

        assert image.size == (400, 400)
        assert image.mode == "RGBA"
        assert image.getpixel((200, 10))[3] == 0
        assert image.getpixel((200, 200))[3] == 255

    def test_resize_box_jpeg_black_padding(self, transform_service, landscape_payload):
        request = TransformRequest(
            resize=ResizeParams(width=400, height=400), output=OutputParams(format="jpg")
        )

        output = transform_service.process(landscape_payload, request)
        image = np.array(decode(output.data))

        assert output.mime_type == "image/jpeg"
        assert image.shape == (400, 400, 3)
        assert image[:90].max() < 16

    def test_convert_only(self, transform_service, png_payload):
        output = transform_service.process(
            png_payload, TransformRequest(output=OutputParams(format="webp"))
        )

        assert output.format is OutputFormat.WEBP
        assert decode(output.data).size == (640, 480)

    def test_crop(self, transform_service, png_payload, test_image):
        request = TransformRequest(
            crop=CropParams(x=10, y=20, width=30, height=40), output=OutputParams(format="png")
        )

        image = np.array(decode(transform_service.process(png_payload, request).data))

        assert np.array_equal(image[:, :, ::-1], test_image[20:60, 10:40])

    def test_rotate_flip(self, transform_service, png_payload):
        request = TransformRequest(
            rotate_flip=RotateFlipParams(rotation_deg=90, flip_h=True),
            output=OutputParams(format="png"),
        )

        output = transform_service.process(png_payload, request)

        assert (output.width, output.height) == (480, 640)

    def test_viewport_crop(self, transform_service, png_payload):
        params = transform_service.viewport_crop(png_payload, CropState(aspect=None, zoom=2))

        assert (params.x, params.y, params.width, params.height) == (160, 120, 320, 240)

    def test_source_format(self, transform_service, jpeg_payload, png_payload):
        assert transform_service.source_format(jpeg_payload) is OutputFormat.JPEG
        assert transform_service.source_format(png_payload) is OutputFormat.PNG

    def test_missing_payload(self, transform_service):
        with pytest.raises(InvalidParametersException):
            transform_service.process(None, TransformRequest())

    def test_empty_payload(self, transform_service):
        with pytest.raises(InvalidParametersException):
            transform_service.process(b"", TransformRequest())

    def test_payload_too_large(self, png_payload):
        service = TransformService(max_upload_bytes=100)

        with pytest.raises(PayloadTooLargeException):
            service.process(png_payload, TransformRequest())

    def test_dimension_limit(self, png_payload):
        service = TransformService(max_upload_bytes=10**7, max_dimension=1000)

        with pytest.raises(InvalidParametersException):
            service.process(png_payload, TransformRequest(resize=ResizeParams(width=5000)))

    def test_multiple_operations_rejected(self, transform_service, png_payload):
        request = TransformRequest(
            resize=ResizeParams(width=10), rotate_flip=RotateFlipParams(rotation_deg=90)
        )

        with pytest.raises(InvalidParametersException):
            transform_service.process(png_payload, request)

    def test_unsupported_format(self, transform_service, png_payload):
        with pytest.raises(UnsupportedFormatException):
            transform_service.process(
                png_payload, TransformRequest(output=OutputParams(format="gif"))
            )

    def test_garbage_payload(self, transform_service):
        with pytest.raises(DecodeFailedException):
            transform_service.process(b"not an image", TransformRequest())

    def test_crop_outside_image(self, transform_service, png_payload):
        request = TransformRequest(crop=CropParams(x=5000, y=0, width=10, height=10))

        with pytest.raises(EmptyCropException):
            transform_service.process(png_payload, request)

    def test_quality_clamped(self, transform_service, png_payload):
        request = TransformRequest(output=OutputParams(format="jpeg", quality=500))

        assert request.output.quality == 100
        assert transform_service.process(png_payload, request).size_bytes > 0

    def test_unexpected_decode_error(self, transform_service, png_payload, monkeypatch):
        import services.transform_service as module

        def explode(*args, **kwargs):
            raise MemoryError("boom")

        monkeypatch.setattr(module, "decode_image", explode)

        with pytest.raises(DecodeFailedException):
            transform_service.process(png_payload, TransformRequest())

    def test_unexpected_composite_error(self, transform_service, png_payload, monkeypatch):
        import services.transform_service as module

        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(module, "composite", explode)

        with pytest.raises(EncodeFailedException):
            transform_service.process(png_payload, TransformRequest())

"""
Tests for decoding and conversions
"""

import base64
import io

import numpy as np
import pytest
from PIL import Image

from api.exceptions import DecodeFailedException, InvalidParametersException
from core.image.converters import (
    SourceImage,
    decode_image,
    normalize_mode,
    probe_image,
    to_base64,
)


def pil_bytes(image, fmt, **kwargs):
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **kwargs)
    return buffer.getvalue()


class TestDecodeImage:
    """Test decoding uploads into SourceImage"""

    def test_png(self, png_payload, test_image):
        source = decode_image(png_payload)

        assert (source.width, source.height, source.channels) == (640, 480, 3)
        assert source.format == "PNG"
        assert source.mime_type == "image/png"
        assert np.array_equal(source.pixels, test_image)

    def test_pixels_are_read_only(self, png_payload):
        source = decode_image(png_payload)

        assert not source.pixels.flags.writeable
        with pytest.raises(ValueError):
            source.pixels[0, 0] = 0

    def test_jpeg(self, jpeg_payload):
        source = decode_image(jpeg_payload)

        assert source.format == "JPEG"
        assert source.channels == 3

    def test_alpha_kept(self):
        payload = pil_bytes(Image.new("RGBA", (4, 4), (10, 20, 30, 40)), "PNG")

        source = decode_image(payload)

        assert source.has_alpha
        assert tuple(source.pixels[0, 0]) == (30, 20, 10, 40)

    def test_grayscale_becomes_bgr(self):
        payload = pil_bytes(Image.new("L", (3, 2), 99), "PNG")

        source = decode_image(payload)

        assert source.pixels.shape == (2, 3, 3)

    def test_palette_with_transparency(self):
        image = Image.new("P", (2, 2), 0)
        image.putpalette([0, 0, 0, 255, 0, 0])
        image.info["transparency"] = 0
        payload = pil_bytes(image, "PNG", transparency=0)

        source = decode_image(payload)

        assert source.has_alpha

    def test_empty_payload(self):
        with pytest.raises(InvalidParametersException):
            decode_image(b"")

    def test_garbage(self):
        with pytest.raises(DecodeFailedException):
            decode_image(b"definitely not an image")

    def test_truncated(self, png_payload):
        with pytest.raises(DecodeFailedException):
            decode_image(png_payload[: len(png_payload) // 2])

    def test_pixel_limit(self, png_payload):
        with pytest.raises(DecodeFailedException):
            decode_image(png_payload, max_pixels=1000)


class TestProbeImage:
    """Test header probing"""

    def test_reads_size_and_format(self, jpeg_payload):
        info = probe_image(jpeg_payload)

        assert (info.width, info.height) == (640, 480)
        assert info.mime_type == "image/jpeg"

    def test_garbage(self):
        with pytest.raises(DecodeFailedException):
            probe_image(b"nope")


class TestConversions:
    """Test helper conversions"""

    def test_normalize_cmyk(self):
        assert normalize_mode(Image.new("CMYK", (2, 2))).mode == "RGB"

    def test_normalize_la(self):
        assert normalize_mode(Image.new("LA", (2, 2))).mode == "RGBA"

    def test_to_base64_bytes(self):
        assert base64.b64decode(to_base64(b"abc")) == b"abc"

    def test_to_base64_array(self, test_image):
        data = base64.b64decode(to_base64(test_image))

        assert Image.open(io.BytesIO(data)).size == (640, 480)

    def test_source_from_array_copies(self, test_image):
        source = SourceImage.from_array(test_image)
        test_image[0, 0] = 7

        assert not np.array_equal(source.pixels[0, 0], test_image[0, 0])
        assert (source.width, source.height, source.channels) == (640, 480, 3)

"""
Pytest configuration and fixtures for Image Utility Server tests
"""

import cv2
import numpy as np
import pytest

from core.image.encoder import encode
from services.background_service import BackgroundRemovalService
from services.transform_service import TransformService

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def make_image(width, height, channels=3):
    """Deterministic test pattern: color gradients plus a white rectangle"""
    xs = np.linspace(0, 255, width).astype(np.uint8)
    ys = np.linspace(0, 255, height).astype(np.uint8)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 0] = xs[np.newaxis, :]
    image[:, :, 1] = ys[:, np.newaxis]
    image[:, :, 2] = 128
    cv2.rectangle(image, (width // 4, height // 4), (width // 2, height // 2), (255, 255, 255), -1)
    if channels == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    return image


def make_noise(width, height, seed=0):
    """Random noise image; compresses badly, so quality changes show in byte size"""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


class FakeRemover:
    """
    Stand-in for the background removal model.

    Makes dark pixels transparent and reports progress in the given steps
    (which may go backwards, to exercise monotonic forwarding).
    """

    def __init__(self, steps=(0, 1, 2, 3), total=3, error=None):
        self.steps = steps
        self.total = total
        self.error = error
        self.calls = 0

    def __call__(self, image, on_progress=None):
        self.calls += 1
        for step in self.steps:
            if on_progress is not None:
                on_progress(step, self.total)
        if self.error is not None:
            raise self.error

        rgba = image.convert("RGBA")
        mask = image.convert("L").point(lambda value: 255 if value > 64 else 0)
        rgba.putalpha(mask)
        return rgba


@pytest.fixture
def test_image():
    """Create a 640x480 BGR test image"""
    return make_image(640, 480)


@pytest.fixture
def landscape_image():
    """Create a 1000x500 BGR test image"""
    return make_image(1000, 500)


@pytest.fixture
def image_factory():
    """Factory for test images of any size"""
    return make_image


@pytest.fixture
def noise_factory():
    """Factory for random noise images"""
    return make_noise


@pytest.fixture
def payload_factory():
    """Factory encoding a raster into upload bytes"""

    def _encode(image, fmt="png", quality=90):
        return encode(image, fmt, quality)

    return _encode


@pytest.fixture
def png_payload(test_image):
    """640x480 PNG upload"""
    return encode(test_image, "png", 80)


@pytest.fixture
def jpeg_payload(test_image):
    """640x480 JPEG upload"""
    return encode(test_image, "jpeg", 90)


@pytest.fixture
def landscape_payload(landscape_image):
    """1000x500 PNG upload"""
    return encode(landscape_image, "png", 80)


@pytest.fixture
def transform_service():
    """Create TransformService instance for testing"""
    return TransformService(max_upload_bytes=MAX_UPLOAD_BYTES)


@pytest.fixture
def remover_factory():
    """The FakeRemover class, for tests that need custom steps or errors"""
    return FakeRemover


@pytest.fixture
def fake_remover():
    """Create a FakeRemover for testing"""
    return FakeRemover()


@pytest.fixture
def background_service(fake_remover):
    """Create BackgroundRemovalService backed by the fake remover"""
    return BackgroundRemovalService(remover=fake_remover, max_upload_bytes=MAX_UPLOAD_BYTES)

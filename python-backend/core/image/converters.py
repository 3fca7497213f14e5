"""
Image format conversion utilities.

Handles conversions between different image representations:
- Encoded bytes -> SourceImage (decoding)
- NumPy arrays (OpenCV BGR/BGRA order) <-> PIL Images (RGB/RGBA)
- Base64 strings
"""

import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional, Union

import cv2
import numpy as np
from PIL import Image

from api.exceptions import DecodeFailedException, ImageToolException, InvalidParametersException

logger = logging.getLogger(__name__)

# PIL modes that carry an alpha channel
_ALPHA_MODES = ("RGBA", "LA", "PA", "RGBa", "La")


@dataclass(frozen=True)
class SourceImage:
    """
    Decoded source raster.

    ``pixels`` is in OpenCV channel order (BGR or BGRA) and is marked
    read-only, so every transform has to allocate its own output.
    """

    pixels: np.ndarray
    width: int
    height: int
    channels: int
    bit_depth: int = 8
    format: Optional[str] = None

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    @property
    def mime_type(self) -> Optional[str]:
        return Image.MIME.get(self.format) if self.format else None

    @classmethod
    def from_array(cls, pixels: np.ndarray, format: Optional[str] = None) -> "SourceImage":
        """Wrap an existing BGR/BGRA array (copied and frozen)."""
        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
        array = np.ascontiguousarray(pixels).copy()
        array.setflags(write=False)
        height, width = array.shape[:2]
        return cls(
            pixels=array,
            width=width,
            height=height,
            channels=array.shape[2],
            bit_depth=array.dtype.itemsize * 8,
            format=format,
        )


def numpy_to_pil(image: np.ndarray) -> Image.Image:
    """
    Convert NumPy array (OpenCV format) to PIL Image.

    Args:
        image: NumPy array in BGR or BGRA format (OpenCV), or grayscale

    Returns:
        PIL Image in RGB or RGBA format
    """
    if image.ndim == 3 and image.shape[2] == 4:
        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    elif image.ndim == 3 and image.shape[2] == 3:
        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    else:
        image_rgb = image

    return Image.fromarray(image_rgb)


def pil_to_numpy(image: Image.Image, bgr: bool = True) -> np.ndarray:
    """
    Convert PIL Image to NumPy array.

    Args:
        image: PIL Image
        bgr: If True, convert to BGR/BGRA format (OpenCV), else keep RGB/RGBA

    Returns:
        NumPy array
    """
    array = np.array(image)

    if bgr and array.ndim == 3:
        if array.shape[2] == 4:
            array = cv2.cvtColor(array, cv2.COLOR_RGBA2BGRA)
        elif array.shape[2] == 3:
            array = cv2.cvtColor(array, cv2.COLOR_RGB2BGR)

    return array


def normalize_mode(image: Image.Image) -> Image.Image:
    """
    Bring any PIL mode down to 8-bit RGB or RGBA.

    Palette images with a transparency entry and all alpha-carrying modes
    become RGBA; everything else (L, CMYK, I;16, ...) becomes RGB.
    """
    if image.mode in _ALPHA_MODES or (image.mode == "P" and "transparency" in image.info):
        return image.convert("RGBA") if image.mode != "RGBA" else image
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def decode_image(payload: bytes, max_pixels: Optional[int] = None) -> SourceImage:
    """
    Decode encoded image bytes into a SourceImage.

    Args:
        payload: Encoded image bytes (any format Pillow can read)
        max_pixels: Optional limit on width * height

    Returns:
        SourceImage in BGR or BGRA order

    Raises:
        InvalidParametersException: If the payload is empty
        DecodeFailedException: If the bytes are not a readable image
    """
    if not payload:
        raise InvalidParametersException("Empty image upload")

    try:
        with Image.open(io.BytesIO(payload)) as image:
            source_format = image.format
            width, height = image.size
            if max_pixels and width * height > max_pixels:
                raise DecodeFailedException(
                    "Image has too many pixels",
                    details=f"{width}x{height} exceeds the limit of {max_pixels} pixels",
                )
            image.load()
            normalized = normalize_mode(image)
            pixels = pil_to_numpy(normalized, bgr=True)

    except ImageToolException:
        raise
    except Exception as e:
        logger.warning(f"Failed to decode image ({len(payload)} bytes): {e}")
        raise DecodeFailedException("Unable to decode image", details=str(e)) from e

    pixels = np.ascontiguousarray(pixels)
    pixels.setflags(write=False)

    logger.debug(f"Decoded {source_format} image {width}x{height}, {pixels.shape[2]} channels")

    return SourceImage(
        pixels=pixels,
        width=width,
        height=height,
        channels=pixels.shape[2],
        bit_depth=8,
        format=source_format,
    )


def to_base64(image: Union[np.ndarray, bytes], format: str = "PNG") -> str:
    """
    Convert image to base64 string.

    Args:
        image: Raw encoded bytes or a NumPy array (encoded with ``format``)
        format: PIL format name used when ``image`` is an array

    Returns:
        Base64 encoded string
    """
    if isinstance(image, bytes):
        return base64.b64encode(image).decode("utf-8")

    buffer = io.BytesIO()
    numpy_to_pil(image).save(buffer, format=format)
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


@dataclass(frozen=True)
class ImageInfo:
    """Header information read without decoding pixels"""

    width: int
    height: int
    format: Optional[str] = None

    @property
    def mime_type(self) -> Optional[str]:
        return Image.MIME.get(self.format) if self.format else None


def probe_image(payload: bytes) -> ImageInfo:
    """
    Read dimensions and container format from the image header.

    Raises:
        InvalidParametersException: If the payload is empty
        DecodeFailedException: If the header is not readable
    """
    if not payload:
        raise InvalidParametersException("Empty image upload")

    try:
        with Image.open(io.BytesIO(payload)) as image:
            width, height = image.size
            return ImageInfo(width=width, height=height, format=image.format)
    except Exception as e:
        raise DecodeFailedException("Unable to decode image", details=str(e)) from e

"""
Format encoding.

Serializes a raster into jpeg/png/webp/avif with Pillow. Stateless: each call
builds its own PIL image and buffer.
"""

import io
import logging
import math
from dataclasses import dataclass
from typing import Union

import numpy as np
from PIL import features

from api.exceptions import EncodeFailedException, UnsupportedFormatException
from core.constants import FormatConstants, ImageConstants
from core.enums import OutputFormat
from core.image.converters import numpy_to_pil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputImage:
    """Encoded result returned to the caller"""

    data: bytes
    mime_type: str
    format: OutputFormat
    width: int
    height: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def parse_output_format(value: Union[str, OutputFormat, None]) -> OutputFormat:
    """
    Parse a wire format name (case-insensitive, ``jpg`` accepted).

    Raises:
        UnsupportedFormatException: For anything outside jpeg/png/webp/avif
    """
    if isinstance(value, OutputFormat):
        return value
    if not isinstance(value, str):
        raise UnsupportedFormatException(str(value))

    output_format = FormatConstants.FORMAT_ALIASES.get(value.strip().lower())
    if output_format is None:
        raise UnsupportedFormatException(value)
    return output_format


def mime_type_for(output_format: Union[str, OutputFormat]) -> str:
    return parse_output_format(output_format).mime_type


def format_for_mime_type(mime_type: str) -> OutputFormat:
    """
    Map a MIME type such as ``image/png`` to an output format.

    Raises:
        UnsupportedFormatException: If the MIME type has no encoder here
    """
    normalized = (mime_type or "").split(";")[0].strip().lower()
    if normalized in FormatConstants.MIME_ALIASES:
        return FormatConstants.MIME_ALIASES[normalized]
    if not normalized.startswith("image/"):
        raise UnsupportedFormatException(mime_type)
    return parse_output_format(normalized[len("image/") :])


def is_format_available(output_format: Union[str, OutputFormat]) -> bool:
    """Whether the installed Pillow build can write the format."""
    output_format = parse_output_format(output_format)
    if output_format in (OutputFormat.WEBP, OutputFormat.AVIF):
        return bool(features.check(output_format.value))
    return True


def clamp_quality(quality: int) -> int:
    return max(ImageConstants.MIN_QUALITY, min(ImageConstants.MAX_QUALITY, int(quality)))


def png_compress_level(quality: int) -> int:
    """
    Map quality to zlib effort. PNG stays lossless; a higher quality value
    only buys more compression effort.
    """
    quality = clamp_quality(quality)
    span = ImageConstants.PNG_MAX_COMPRESS_LEVEL - ImageConstants.PNG_MIN_COMPRESS_LEVEL
    level = ImageConstants.PNG_MIN_COMPRESS_LEVEL + (quality - 1) * span / 99
    return int(math.floor(level + 0.5))


def _save_kwargs(output_format: OutputFormat, quality: int) -> dict:
    kwargs = {"format": FormatConstants.PIL_FORMAT_NAMES[output_format]}

    if output_format is OutputFormat.JPEG:
        kwargs["quality"] = quality
        kwargs["optimize"] = True
    elif output_format is OutputFormat.PNG:
        kwargs["compress_level"] = png_compress_level(quality)
    elif output_format is OutputFormat.WEBP:
        kwargs["quality"] = quality
        kwargs["method"] = 4
    elif output_format is OutputFormat.AVIF:
        kwargs["quality"] = quality

    return kwargs


def encode(raster: np.ndarray, output_format: Union[str, OutputFormat], quality: int) -> bytes:
    """
    Encode a raster.

    Args:
        raster: BGR, BGRA or grayscale NumPy array
        output_format: jpeg/jpg/png/webp/avif
        quality: 1-100, clamped

    Returns:
        Encoded bytes

    Raises:
        UnsupportedFormatException: Unknown format
        EncodeFailedException: Alpha raster for JPEG, or any encoder failure
    """
    output_format = parse_output_format(output_format)
    quality = clamp_quality(quality)

    if output_format is OutputFormat.JPEG and raster.ndim == 3 and raster.shape[2] == 4:
        raise EncodeFailedException(
            "JPEG output cannot carry an alpha channel",
            details="Flatten transparency before encoding",
        )

    try:
        pil_image = numpy_to_pil(raster)
        buffer = io.BytesIO()
        pil_image.save(buffer, **_save_kwargs(output_format, quality))
        data = buffer.getvalue()
    except Exception as e:
        logger.error(f"Failed to encode {output_format.value} at quality {quality}: {e}")
        raise EncodeFailedException(
            f"Failed to encode image as {output_format.value}", details=str(e)
        ) from e

    if not data:
        raise EncodeFailedException(f"Encoder produced no data for {output_format.value}")

    return data


def encode_image(
    raster: np.ndarray, output_format: Union[str, OutputFormat], quality: int
) -> OutputImage:
    """Encode a raster and wrap it with its MIME type and dimensions."""
    output_format = parse_output_format(output_format)
    data = encode(raster, output_format, quality)
    height, width = raster.shape[:2]
    return OutputImage(
        data=data,
        mime_type=output_format.mime_type,
        format=output_format,
        width=width,
        height=height,
    )

"""
Raster compositing operations.

Every function returns a newly allocated raster; inputs are never modified,
so one decoded source can feed a preview and a final export at the same time.

Padding color is explicit: transparent (alpha 0) when the output format can
carry alpha, opaque black otherwise.
"""

import logging
from typing import Tuple

import cv2
import numpy as np

from api.exceptions import InvalidParametersException
from core.constants import ImageConstants
from core.enums import TransformOperation
from core.image.geometry import (
    Geometry,
    is_right_angle,
    normalize_angle,
    quarter_turns,
    rotate_flip_matrix,
    rotated_bounding_box,
)
from schemas import CropRect

logger = logging.getLogger(__name__)

_QUARTER_ROTATIONS = {
    1: cv2.ROTATE_90_CLOCKWISE,
    2: cv2.ROTATE_180,
    3: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def channel_count(image: np.ndarray) -> int:
    return 1 if image.ndim == 2 else image.shape[2]


def ensure_bgra(image: np.ndarray) -> np.ndarray:
    """
    Ensure image has an alpha channel (BGRA).

    Args:
        image: Grayscale, BGR or BGRA image

    Returns:
        New BGRA image
    """
    channels = channel_count(image)
    if channels == 1:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    return image.copy()


def flatten_alpha(
    image: np.ndarray, background: Tuple[int, int, int] = ImageConstants.OPAQUE_BLACK_BGR
) -> np.ndarray:
    """
    Composite a BGRA image over an opaque background.

    Used before encoding to formats without alpha (JPEG). Images without an
    alpha channel are returned as a BGR copy.

    Args:
        image: Input image
        background: BGR background color, black by default

    Returns:
        New BGR image
    """
    channels = channel_count(image)
    if channels == 1:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if channels == 3:
        return image.copy()

    alpha = image[:, :, 3:4].astype(np.float32) / 255.0
    color = image[:, :, :3].astype(np.float32)
    backdrop = np.array(background, dtype=np.float32).reshape(1, 1, 3)
    blended = color * alpha + backdrop * (1.0 - alpha)
    return np.clip(np.rint(blended), 0, 255).astype(np.uint8)


def _new_canvas(width: int, height: int, transparent: bool) -> np.ndarray:
    if transparent:
        return np.zeros((height, width, 4), dtype=np.uint8)
    return np.zeros((height, width, 3), dtype=np.uint8)


def resize_draw(source: np.ndarray, geometry: Geometry, transparent: bool = True) -> np.ndarray:
    """
    Scale source into the geometry's draw box and center it on its canvas.

    Shrinking uses area interpolation, enlarging uses bicubic. When the draw
    box fills the canvas no padding is added and the source channel layout is
    kept.

    Args:
        source: Source raster (BGR or BGRA)
        geometry: Resize geometry
        transparent: Pad with transparent pixels (True) or opaque black (False)

    Returns:
        New raster of size (canvas_width, canvas_height)
    """
    src_height, src_width = source.shape[:2]
    draw_size = (geometry.draw_width, geometry.draw_height)

    if draw_size == (src_width, src_height):
        resized = source.copy()
    else:
        shrinking = geometry.draw_width * geometry.draw_height < src_width * src_height
        interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC
        resized = cv2.resize(source, draw_size, interpolation=interpolation)

    if not geometry.is_padded:
        return resized

    if transparent:
        resized = ensure_bgra(resized)
    else:
        resized = flatten_alpha(resized)

    canvas = _new_canvas(geometry.canvas_width, geometry.canvas_height, transparent)
    y, x = geometry.offset_y, geometry.offset_x
    canvas[y : y + geometry.draw_height, x : x + geometry.draw_width] = resized

    logger.debug(
        f"Resized {src_width}x{src_height} -> {geometry.draw_width}x{geometry.draw_height} "
        f"on {geometry.canvas_width}x{geometry.canvas_height} canvas at ({x}, {y})"
    )
    return canvas


def rotate_flip(
    source: np.ndarray, rotation_deg: float, flip_h: bool = False, flip_v: bool = False
) -> np.ndarray:
    """
    Rotate (clockwise) and mirror an image onto its bounding-box canvas.

    The drawing order is translate to canvas center, rotate, mirror, draw
    centered, so mirroring happens in source space before the rotation.
    Right angles use exact pixel permutation; other angles are resampled
    bilinearly and return BGRA with transparent corners.

    Args:
        source: Source raster
        rotation_deg: Clockwise rotation in degrees
        flip_h: Mirror horizontally
        flip_v: Mirror vertically

    Returns:
        New raster sized by rotated_bounding_box
    """
    angle = normalize_angle(rotation_deg)

    if is_right_angle(angle):
        result = source
        if flip_h and flip_v:
            result = cv2.flip(result, -1)
        elif flip_h:
            result = cv2.flip(result, 1)
        elif flip_v:
            result = cv2.flip(result, 0)

        turns = quarter_turns(angle)
        if turns:
            result = cv2.rotate(result, _QUARTER_ROTATIONS[turns])

        return result.copy() if result is source else result

    height, width = source.shape[:2]
    canvas_width, canvas_height = rotated_bounding_box(width, height, angle)
    matrix = rotate_flip_matrix(
        width, height, canvas_width, canvas_height, np.deg2rad(angle), flip_h, flip_v
    )

    return cv2.warpAffine(
        ensure_bgra(source),
        matrix,
        (canvas_width, canvas_height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=ImageConstants.TRANSPARENT_BGRA,
    )


def crop_extract(source: np.ndarray, rect: CropRect) -> np.ndarray:
    """
    Copy the pixels inside rect into a new raster (no resampling).

    Raises:
        InvalidParametersException: If rect extends beyond the source
    """
    height, width = source.shape[:2]
    if not rect.is_within(width, height):
        raise InvalidParametersException(
            "Crop rectangle exceeds image bounds",
            details=f"Rectangle {rect.to_dict()} on {width}x{height} image",
        )
    return source[rect.y : rect.y2, rect.x : rect.x2].copy()


def composite(source: np.ndarray, geometry: Geometry, transparent: bool = True) -> np.ndarray:
    """
    Produce the output raster for a geometry.

    Args:
        source: Decoded source raster
        geometry: Geometry computed for the request
        transparent: Whether padding may be transparent

    Returns:
        New raster
    """
    if geometry.operation is TransformOperation.RESIZE:
        return resize_draw(source, geometry, transparent)

    if geometry.operation is TransformOperation.CROP:
        extracted = crop_extract(source, geometry.source_rect)
        if not geometry.rotation_rad:
            return extracted
        rotated = rotate_flip(extracted, geometry.rotation_deg)
        if geometry.output_rect is not None:
            return crop_extract(rotated, geometry.output_rect)
        return rotated

    if geometry.operation is TransformOperation.ROTATE_FLIP:
        return rotate_flip(source, geometry.rotation_deg, geometry.flip_h, geometry.flip_v)

    return source.copy()

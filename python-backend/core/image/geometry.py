"""
Geometric calculations for the transform pipeline.

Pure functions, no I/O:
- resize_fit: contain-fit canvas/draw sizes and centering offsets
- rotated_bounding_box: axis-aligned box enclosing a rotated rectangle
- crop_rectangle / crop_viewport: map an interactive crop viewport back to source pixels
- viewport_window: the visible part of a rotated crop extract
- Affine steps: explicit ordered translate/rotate/scale composition
- compute_geometry: derive the Geometry for a TransformRequest
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from api.exceptions import EmptyCropException, InvalidParametersException
from core.constants import EditorConstants, ImageConstants
from core.enums import AffineOp, TransformOperation
from schemas import CropRect, CropViewport, TransformRequest

logger = logging.getLogger(__name__)


def _snap(value: float) -> float:
    # Drops trig noise such as 600.00000000000005 before rounding to pixels
    return round(value, ImageConstants.PIXEL_SNAP_DECIMALS)


def _ceil_px(value: float) -> int:
    return int(math.ceil(_snap(value)))


def _floor_px(value: float) -> int:
    return int(math.floor(_snap(value)))


def _round_px(value: float) -> int:
    """Round half up, like browser canvas math."""
    return int(math.floor(_snap(value) + 0.5))


def normalize_angle(angle_deg: float) -> float:
    """Normalize angle to [0, 360) degrees."""
    angle = math.fmod(angle_deg, EditorConstants.FULL_TURN_DEG)
    if angle < 0:
        angle += EditorConstants.FULL_TURN_DEG
    if _snap(angle) == EditorConstants.FULL_TURN_DEG:
        angle = 0.0
    return angle


def is_right_angle(angle_deg: float) -> bool:
    """True for multiples of 90 degrees (within floating noise)."""
    quarters = normalize_angle(angle_deg) / 90.0
    return abs(quarters - round(quarters)) < 1e-9


def quarter_turns(angle_deg: float) -> int:
    """Number of clockwise quarter turns for a right angle."""
    return int(round(normalize_angle(angle_deg) / 90.0)) % 4


@dataclass(frozen=True)
class ResizeGeometry:
    """Result of a contain-fit resize"""

    canvas_width: int
    canvas_height: int
    draw_width: int
    draw_height: int
    offset_x: int
    offset_y: int

    @property
    def is_padded(self) -> bool:
        return (self.draw_width, self.draw_height) != (self.canvas_width, self.canvas_height)


def resize_fit(
    source_width: int,
    source_height: int,
    target_width: Optional[int] = None,
    target_height: Optional[int] = None,
) -> ResizeGeometry:
    """
    Compute a contain-fit resize.

    The source keeps its aspect ratio and is scaled (up or down) to fit
    entirely inside the target box, centered. With a single target dimension
    the other one follows the source aspect ratio and no padding is needed.

    Args:
        source_width: Source width in pixels
        source_height: Source height in pixels
        target_width: Optional box width
        target_height: Optional box height

    Returns:
        ResizeGeometry with canvas size, draw size and draw offset

    Raises:
        InvalidParametersException: If no target dimension is given or any
            dimension is not positive
    """
    if source_width <= 0 or source_height <= 0:
        raise InvalidParametersException(
            f"Source dimensions must be positive, got {source_width}x{source_height}"
        )
    if target_width is None and target_height is None:
        raise InvalidParametersException("Resize requires a width, a height, or both")
    for name, value in (("width", target_width), ("height", target_height)):
        if value is not None and value <= 0:
            raise InvalidParametersException(f"Target {name} must be a positive integer")

    if target_height is None:
        height = max(1, _round_px(source_height * target_width / source_width))
        return ResizeGeometry(target_width, height, target_width, height, 0, 0)

    if target_width is None:
        width = max(1, _round_px(source_width * target_height / source_height))
        return ResizeGeometry(width, target_height, width, target_height, 0, 0)

    scale = min(target_width / source_width, target_height / source_height)
    draw_width = min(target_width, max(1, _round_px(source_width * scale)))
    draw_height = min(target_height, max(1, _round_px(source_height * scale)))

    return ResizeGeometry(
        canvas_width=target_width,
        canvas_height=target_height,
        draw_width=draw_width,
        draw_height=draw_height,
        offset_x=(target_width - draw_width) // 2,
        offset_y=(target_height - draw_height) // 2,
    )


def rotated_extent(width: float, height: float, rotation_deg: float) -> Tuple[float, float]:
    """Exact (unrounded) size of the box enclosing a rotated rectangle."""
    rad = math.radians(rotation_deg)
    abs_cos = abs(math.cos(rad))
    abs_sin = abs(math.sin(rad))
    return (
        width * abs_cos + height * abs_sin,
        width * abs_sin + height * abs_cos,
    )


def rotated_bounding_box(width: int, height: int, rotation_deg: float) -> Tuple[int, int]:
    """
    Minimal axis-aligned box containing a rectangle rotated about its center.

    Both sides are rounded up so no rotated pixel is ever cut off.

    Example:
        >>> rotated_bounding_box(800, 600, 45)
        (990, 990)
    """
    box_width, box_height = rotated_extent(width, height, rotation_deg)
    return max(1, _ceil_px(box_width)), max(1, _ceil_px(box_height))


def crop_rectangle(
    source_width: int,
    source_height: int,
    zoom: float = 1.0,
    pan_x: float = 0.0,
    pan_y: float = 0.0,
    rotation_deg: float = 0.0,
    viewport_aspect: Optional[float] = None,
) -> CropRect:
    """Source rectangle of an interactive crop viewport (see crop_viewport)."""
    rect, _ = crop_viewport(
        source_width, source_height, zoom, pan_x, pan_y, rotation_deg, viewport_aspect
    )
    return rect


def crop_viewport(
    source_width: int,
    source_height: int,
    zoom: float = 1.0,
    pan_x: float = 0.0,
    pan_y: float = 0.0,
    rotation_deg: float = 0.0,
    viewport_aspect: Optional[float] = None,
) -> Tuple[CropRect, CropViewport]:
    """
    Map an interactive crop viewport back into source pixel coordinates.

    At zoom 1 the viewport is the largest rectangle of ``viewport_aspect``
    that fits inside the (rotated) source. Zoom shrinks it by ``1/zoom``;
    pan is the displayed image's translation in source pixels at zoom 1.
    With a rotation the viewport corners are rotated back by
    ``-rotation_deg`` around the source center and their bounding box taken.

    Args:
        source_width: Source width in pixels
        source_height: Source height in pixels
        zoom: Zoom factor (> 0)
        pan_x: Horizontal image translation
        pan_y: Vertical image translation
        rotation_deg: Clockwise rotation of the displayed image
        viewport_aspect: Viewport width/height, None for the source aspect

    Returns:
        CropRect clamped to [0, source_width] x [0, source_height], and the
        CropViewport (unclamped window center in source pixels, window size)

    Raises:
        InvalidParametersException: For non-positive zoom, aspect or source
            size, or non-finite numbers
        EmptyCropException: If nothing of the viewport lies on the source
    """
    if source_width <= 0 or source_height <= 0:
        raise InvalidParametersException("Source dimensions must be positive")
    values = (zoom, pan_x, pan_y, rotation_deg)
    if viewport_aspect is not None:
        values += (viewport_aspect,)
    if not all(math.isfinite(value) for value in values):
        raise InvalidParametersException(
            "Crop viewport values must be finite numbers", details=f"Got {values}"
        )
    if zoom <= 0:
        raise InvalidParametersException(f"Zoom must be positive, got {zoom}")

    aspect = viewport_aspect if viewport_aspect is not None else source_width / source_height
    if aspect <= 0:
        raise InvalidParametersException(f"Viewport aspect must be positive, got {aspect}")

    box_width, box_height = rotated_extent(source_width, source_height, rotation_deg)
    if box_width / box_height > aspect:
        view_height = box_height
        view_width = box_height * aspect
    else:
        view_width = box_width
        view_height = box_width / aspect

    view_width /= zoom
    view_height /= zoom

    center_x = source_width / 2
    center_y = source_height / 2
    view_cx = center_x - pan_x / zoom
    view_cy = center_y - pan_y / zoom

    points = [
        (view_cx, view_cy),
        (view_cx - view_width / 2, view_cy - view_height / 2),
        (view_cx + view_width / 2, view_cy - view_height / 2),
        (view_cx + view_width / 2, view_cy + view_height / 2),
        (view_cx - view_width / 2, view_cy + view_height / 2),
    ]

    if normalize_angle(rotation_deg) != 0:
        rad = -math.radians(rotation_deg)
        cos_a = math.cos(rad)
        sin_a = math.sin(rad)
        points = [
            (
                center_x + (x - center_x) * cos_a - (y - center_y) * sin_a,
                center_y + (x - center_x) * sin_a + (y - center_y) * cos_a,
            )
            for x, y in points
        ]

    (window_cx, window_cy), corners = points[0], points[1:]
    xs = [x for x, _ in corners]
    ys = [y for _, y in corners]

    x1 = max(0, _floor_px(min(xs)))
    y1 = max(0, _floor_px(min(ys)))
    x2 = min(source_width, _ceil_px(max(xs)))
    y2 = min(source_height, _ceil_px(max(ys)))

    if x2 - x1 <= 0 or y2 - y1 <= 0:
        raise EmptyCropException(
            "Crop viewport does not overlap the image",
            details=f"Computed bounds ({x1}, {y1}) - ({x2}, {y2})",
        )

    viewport = CropViewport(
        center_x=window_cx, center_y=window_cy, width=view_width, height=view_height
    )
    return CropRect(x=x1, y=y1, width=x2 - x1, height=y2 - y1), viewport


def viewport_window(
    rect: CropRect,
    viewport: CropViewport,
    rotation_deg: float,
    canvas_width: int,
    canvas_height: int,
) -> CropRect:
    """
    Part of a rotated crop extract that the viewport showed.

    The extract of ``rect`` is drawn rotated about its center onto a
    ``canvas_width`` x ``canvas_height`` canvas; the viewport center is
    carried through the same rotation and a viewport-sized window is cut
    around it, clipped to the canvas.

    Raises:
        EmptyCropException: If the window misses the canvas
    """
    rel_x = viewport.center_x - (rect.x + rect.width / 2)
    rel_y = viewport.center_y - (rect.y + rect.height / 2)
    rad = math.radians(rotation_deg)
    cos_a = math.cos(rad)
    sin_a = math.sin(rad)
    center_x = canvas_width / 2 + rel_x * cos_a - rel_y * sin_a
    center_y = canvas_height / 2 + rel_x * sin_a + rel_y * cos_a

    width = max(1, _round_px(viewport.width))
    height = max(1, _round_px(viewport.height))
    left = _round_px(center_x - width / 2)
    top = _round_px(center_y - height / 2)

    x1 = max(0, left)
    y1 = max(0, top)
    x2 = min(canvas_width, left + width)
    y2 = min(canvas_height, top + height)
    if x2 <= x1 or y2 <= y1:
        raise EmptyCropException(
            "Crop viewport does not overlap the rotated extract",
            details=f"Window ({left}, {top}) {width}x{height} on {canvas_width}x{canvas_height}",
        )
    return CropRect(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


def clip_crop_rect(rect: CropRect, source_width: int, source_height: int) -> CropRect:
    """
    Intersect an explicit crop rectangle with the source bounds.

    Raises:
        EmptyCropException: If the intersection is empty
    """
    clipped = rect.clip(source_width, source_height)
    if clipped is None:
        raise EmptyCropException(
            "Crop rectangle lies outside the image",
            details=f"Rectangle {rect.to_dict()} on {source_width}x{source_height} image",
        )
    if clipped != rect:
        logger.debug(f"Crop rectangle {rect.to_dict()} clipped to {clipped.to_dict()}")
    return clipped


# Affine composition


@dataclass(frozen=True)
class AffineStep:
    """One primitive affine step (translate, rotate or scale)"""

    op: AffineOp
    a: float = 0.0
    b: float = 0.0

    def matrix(self) -> np.ndarray:
        if self.op is AffineOp.TRANSLATE:
            return np.array([[1.0, 0.0, self.a], [0.0, 1.0, self.b], [0.0, 0.0, 1.0]])
        if self.op is AffineOp.ROTATE:
            cos_a = math.cos(self.a)
            sin_a = math.sin(self.a)
            return np.array([[cos_a, -sin_a, 0.0], [sin_a, cos_a, 0.0], [0.0, 0.0, 1.0]])
        if self.op is AffineOp.SCALE:
            return np.array([[self.a, 0.0, 0.0], [0.0, self.b, 0.0], [0.0, 0.0, 1.0]])
        raise ValueError(f"Unknown affine op: {self.op}")


def translate(tx: float, ty: float) -> AffineStep:
    return AffineStep(AffineOp.TRANSLATE, tx, ty)


def rotate(angle_rad: float) -> AffineStep:
    return AffineStep(AffineOp.ROTATE, angle_rad)


def scale(sx: float, sy: float) -> AffineStep:
    return AffineStep(AffineOp.SCALE, sx, sy)


def compose_affine(steps: Sequence[AffineStep]) -> np.ndarray:
    """
    Compose steps the way a drawing context does.

    Each step post-multiplies the current transform, so the first step in the
    sequence is the outermost one applied to a drawn point.

    Returns:
        2x3 float64 matrix mapping source points to canvas points
    """
    result = np.eye(3)
    for step in steps:
        result = result @ step.matrix()
    return result[:2]


def rotate_flip_steps(
    source_width: int,
    source_height: int,
    canvas_width: int,
    canvas_height: int,
    rotation_rad: float,
    flip_h: bool = False,
    flip_v: bool = False,
) -> list:
    """
    Ordered steps for drawing a rotated/mirrored source onto its canvas.

    translate(canvas center) -> rotate -> scale(mirror) -> translate(-source
    center). Reordering rotate and scale changes the visual result.
    """
    return [
        translate(canvas_width / 2, canvas_height / 2),
        rotate(rotation_rad),
        scale(-1.0 if flip_h else 1.0, -1.0 if flip_v else 1.0),
        translate(-source_width / 2, -source_height / 2),
    ]


def rotate_flip_matrix(
    source_width: int,
    source_height: int,
    canvas_width: int,
    canvas_height: int,
    rotation_rad: float,
    flip_h: bool = False,
    flip_v: bool = False,
) -> np.ndarray:
    """
    Rotate/flip transform in pixel-index coordinates (for cv2.warpAffine).

    Pixel centers sit at half-integer positions in drawing coordinates, so the
    drawing transform is wrapped in half-pixel shifts.
    """
    steps = (
        [translate(-0.5, -0.5)]
        + rotate_flip_steps(
            source_width,
            source_height,
            canvas_width,
            canvas_height,
            rotation_rad,
            flip_h,
            flip_v,
        )
        + [translate(0.5, 0.5)]
    )
    return compose_affine(steps)


# Request geometry


@dataclass(frozen=True)
class Geometry:
    """
    Numeric parameters for one request, derived from the request and the
    source dimensions. Never mutated after creation.
    """

    operation: TransformOperation
    canvas_width: int
    canvas_height: int
    draw_width: int
    draw_height: int
    source_rect: CropRect
    offset_x: int = 0
    offset_y: int = 0
    rotation_rad: float = 0.0
    flip_h: bool = False
    flip_v: bool = False
    # Window of the rotated canvas to keep (viewport crops only)
    output_rect: Optional[CropRect] = None

    @property
    def rotation_deg(self) -> float:
        return math.degrees(self.rotation_rad)

    @property
    def is_padded(self) -> bool:
        return (self.draw_width, self.draw_height) != (self.canvas_width, self.canvas_height)


def compute_geometry(request: TransformRequest, source_width: int, source_height: int) -> Geometry:
    """
    Derive the Geometry for the single geometric operation of a request.

    Args:
        request: Validated transform request
        source_width: Decoded source width
        source_height: Decoded source height

    Returns:
        Geometry for the compositor
    """
    full = CropRect.full(source_width, source_height)
    operation = request.operation

    if operation is TransformOperation.RESIZE:
        fit = resize_fit(
            source_width, source_height, request.resize.width, request.resize.height
        )
        return Geometry(
            operation=operation,
            canvas_width=fit.canvas_width,
            canvas_height=fit.canvas_height,
            draw_width=fit.draw_width,
            draw_height=fit.draw_height,
            offset_x=fit.offset_x,
            offset_y=fit.offset_y,
            source_rect=full,
        )

    if operation is TransformOperation.CROP:
        rect = clip_crop_rect(request.crop.rect, source_width, source_height)
        angle = normalize_angle(request.crop.rotation_deg)
        canvas_width, canvas_height = rotated_bounding_box(rect.width, rect.height, angle)
        output_rect = None
        if angle and request.crop.viewport is not None:
            output_rect = viewport_window(
                rect, request.crop.viewport, angle, canvas_width, canvas_height
            )
        return Geometry(
            operation=operation,
            canvas_width=canvas_width,
            canvas_height=canvas_height,
            draw_width=rect.width,
            draw_height=rect.height,
            source_rect=rect,
            rotation_rad=math.radians(angle),
            output_rect=output_rect,
        )

    if operation is TransformOperation.ROTATE_FLIP:
        params = request.rotate_flip
        angle = normalize_angle(params.rotation_deg)
        canvas_width, canvas_height = rotated_bounding_box(source_width, source_height, angle)
        return Geometry(
            operation=operation,
            canvas_width=canvas_width,
            canvas_height=canvas_height,
            draw_width=source_width,
            draw_height=source_height,
            source_rect=full,
            rotation_rad=math.radians(angle),
            flip_h=params.flip_h,
            flip_v=params.flip_v,
        )

    return Geometry(
        operation=TransformOperation.NONE,
        canvas_width=source_width,
        canvas_height=source_height,
        draw_width=source_width,
        draw_height=source_height,
        source_rect=full,
    )

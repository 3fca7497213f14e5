"""
Interactive editing state.

The crop and rotate/flip editors keep their state in immutable value objects
(RotateFlipState, CropState). Every change produces a new state which a
PreviewSession turns into a fresh preview raster or crop rectangle right away,
so the displayed preview always matches the state that produced it.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np

from api.exceptions import InvalidParametersException, UnsupportedFormatException
from core.constants import EditorConstants, ImageConstants
from core.enums import OutputFormat
from core.image.converters import SourceImage, decode_image
from core.image.encoder import encode, format_for_mime_type
from core.image.geometry import compute_geometry, crop_rectangle, crop_viewport, normalize_angle
from core.image.processors import composite, flatten_alpha, rotate_flip
from core.utils import export_filename
from schemas import CropParams, CropRect, RotateFlipParams, TransformRequest

logger = logging.getLogger(__name__)


def clamp_zoom(zoom: float) -> float:
    return max(EditorConstants.MIN_ZOOM, min(EditorConstants.MAX_ZOOM, float(zoom)))


def aspect_for_preset(label: str) -> Optional[float]:
    """
    Look up an aspect preset ("Free", "16:9", "4:3", "1:1", "2:3").

    Raises:
        InvalidParametersException: For an unknown label
    """
    if label not in EditorConstants.ASPECT_PRESETS:
        raise InvalidParametersException(
            f"Unknown aspect preset: {label}",
            details=f"Available: {', '.join(EditorConstants.ASPECT_PRESETS)}",
        )
    return EditorConstants.ASPECT_PRESETS[label]


@dataclass(frozen=True)
class RotateFlipState:
    """Rotation (clockwise degrees) and mirror flags of the rotate/flip editor"""

    rotation_deg: float = 0.0
    flip_h: bool = False
    flip_v: bool = False

    def rotate_left(self) -> "RotateFlipState":
        return replace(self, rotation_deg=self.rotation_deg - EditorConstants.ROTATION_STEP_DEG)

    def rotate_right(self) -> "RotateFlipState":
        return replace(self, rotation_deg=self.rotation_deg + EditorConstants.ROTATION_STEP_DEG)

    def toggle_flip_h(self) -> "RotateFlipState":
        return replace(self, flip_h=not self.flip_h)

    def toggle_flip_v(self) -> "RotateFlipState":
        return replace(self, flip_v=not self.flip_v)

    @property
    def is_identity(self) -> bool:
        return normalize_angle(self.rotation_deg) == 0 and not self.flip_h and not self.flip_v

    def to_params(self) -> RotateFlipParams:
        return RotateFlipParams(
            rotation_deg=self.rotation_deg, flip_h=self.flip_h, flip_v=self.flip_v
        )


@dataclass(frozen=True)
class CropState:
    """
    Viewport state of the crop editor.

    Zoom is kept within [1, 3]; rotation is normalized to [0, 360). ``aspect``
    is the viewport width/height ratio, None meaning free (source aspect).
    """

    zoom: float = EditorConstants.MIN_ZOOM
    pan_x: float = 0.0
    pan_y: float = 0.0
    rotation_deg: float = 0.0
    aspect: Optional[float] = EditorConstants.DEFAULT_ASPECT

    def __post_init__(self):
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "zoom", clamp_zoom(self.zoom))
        object.__setattr__(self, "rotation_deg", normalize_angle(self.rotation_deg))
        if self.aspect is not None and self.aspect <= 0:
            raise InvalidParametersException(f"Aspect must be positive, got {self.aspect}")

    def with_zoom(self, zoom: float) -> "CropState":
        return replace(self, zoom=zoom)

    def with_pan(self, pan_x: float, pan_y: float) -> "CropState":
        return replace(self, pan_x=pan_x, pan_y=pan_y)

    def with_rotation(self, rotation_deg: float) -> "CropState":
        return replace(self, rotation_deg=rotation_deg)

    def rotate_left(self) -> "CropState":
        return self.with_rotation(self.rotation_deg - EditorConstants.ROTATION_STEP_DEG)

    def rotate_right(self) -> "CropState":
        return self.with_rotation(self.rotation_deg + EditorConstants.ROTATION_STEP_DEG)

    def with_aspect_preset(self, label: str) -> "CropState":
        return replace(self, aspect=aspect_for_preset(label))

    def crop_rect(self, source_width: int, source_height: int) -> CropRect:
        """Source-pixel rectangle currently shown in the viewport."""
        return crop_rectangle(
            source_width,
            source_height,
            zoom=self.zoom,
            pan_x=self.pan_x,
            pan_y=self.pan_y,
            rotation_deg=self.rotation_deg,
            viewport_aspect=self.aspect,
        )

    def to_params(self, source_width: int, source_height: int) -> CropParams:
        rect, viewport = crop_viewport(
            source_width,
            source_height,
            zoom=self.zoom,
            pan_x=self.pan_x,
            pan_y=self.pan_y,
            rotation_deg=self.rotation_deg,
            viewport_aspect=self.aspect,
        )
        return CropParams(
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            rotation_deg=self.rotation_deg,
            viewport=viewport,
        )


@dataclass(frozen=True)
class ExportedFile:
    """Encoded export ready to be offered as a download"""

    filename: str
    mime_type: str
    data: bytes = field(repr=False)
    width: int = 0
    height: int = 0


class PreviewSession:
    """
    Editing session for one loaded image.

    Single-threaded: each update recomputes synchronously before returning,
    so there is never a stale preview waiting behind a newer state.
    """

    def __init__(self, source: SourceImage, filename: Optional[str] = None, mime_type: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.mime_type = mime_type or source.mime_type or OutputFormat.PNG.mime_type
        self.rotate_flip_state = RotateFlipState()
        self.crop_state = CropState()
        self.preview = self._render_rotate_flip(self.rotate_flip_state)
        self.crop = self.crop_state.crop_rect(source.width, source.height)

    @classmethod
    def from_bytes(
        cls,
        payload: bytes,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
        max_pixels: Optional[int] = ImageConstants.MAX_IMAGE_PIXELS,
    ) -> "PreviewSession":
        return cls(decode_image(payload, max_pixels), filename=filename, mime_type=mime_type)

    def _render_rotate_flip(self, state: RotateFlipState) -> np.ndarray:
        return rotate_flip(self.source.pixels, state.rotation_deg, state.flip_h, state.flip_v)

    def update_rotate_flip(self, state: RotateFlipState) -> np.ndarray:
        """Apply a new rotate/flip state and return the redrawn preview."""
        self.preview = self._render_rotate_flip(state)
        self.rotate_flip_state = state
        return self.preview

    def update_crop(self, state: CropState) -> CropRect:
        """Apply a new crop state and return the rectangle it selects."""
        self.crop = state.crop_rect(self.source.width, self.source.height)
        self.crop_state = state
        return self.crop

    def reset(self) -> None:
        self.update_rotate_flip(RotateFlipState())
        self.update_crop(CropState())

    def export_format(self) -> OutputFormat:
        """Original format, or PNG when it cannot be encoded here."""
        try:
            return format_for_mime_type(self.mime_type)
        except UnsupportedFormatException:
            logger.info(f"No encoder for {self.mime_type}, exporting as png")
            return OutputFormat.PNG

    def _export(self, raster: np.ndarray, prefix: str) -> ExportedFile:
        output_format = self.export_format()
        if not output_format.supports_alpha:
            raster = flatten_alpha(raster)

        data = encode(raster, output_format, ImageConstants.EXPORT_JPEG_QUALITY)
        height, width = raster.shape[:2]
        return ExportedFile(
            filename=export_filename(prefix, self.filename),
            mime_type=output_format.mime_type,
            data=data,
            width=width,
            height=height,
        )

    def export_rotate_flip(self) -> ExportedFile:
        """Encode the current rotate/flip preview as an ``edited-`` download."""
        return self._export(self.preview, EditorConstants.EDIT_PREFIX)

    def export_crop(self) -> ExportedFile:
        """Extract the visible crop window as a ``cropped-`` download."""
        params = self.crop_state.to_params(self.source.width, self.source.height)
        geometry = compute_geometry(
            TransformRequest(crop=params), self.source.width, self.source.height
        )
        raster = composite(self.source.pixels, geometry)
        return self._export(raster, EditorConstants.CROP_PREFIX)

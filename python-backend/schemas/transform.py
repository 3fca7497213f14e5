"""
Transform request models.

A TransformRequest carries at most one geometric operation (resize, crop or
rotate/flip) plus the output encoding parameters.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.constants import FormatConstants, ImageConstants
from core.enums import TransformOperation

from .common import CropRect


class ResizeParams(BaseModel):
    """Target box for a contain-fit resize"""

    width: Optional[int] = Field(None, gt=0, description="Target width in pixels")
    height: Optional[int] = Field(None, gt=0, description="Target height in pixels")


class CropViewport(BaseModel):
    """
    Window the crop editor showed: center in source pixels, size in pixels
    of the rotated display.
    """

    center_x: float = Field(..., allow_inf_nan=False)
    center_y: float = Field(..., allow_inf_nan=False)
    width: float = Field(..., gt=0, allow_inf_nan=False)
    height: float = Field(..., gt=0, allow_inf_nan=False)


class CropParams(BaseModel):
    """
    Crop rectangle in source pixels, optionally rotated after extraction.

    With a ``viewport`` and a rotation, the rotated extract is cut down to the
    window that was visible in the editor.
    """

    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    rotation_deg: float = Field(
        0.0, allow_inf_nan=False, description="Rotation applied to the extracted region"
    )
    viewport: Optional[CropViewport] = None

    @property
    def rect(self) -> CropRect:
        return CropRect(x=self.x, y=self.y, width=self.width, height=self.height)


class RotateFlipParams(BaseModel):
    """Rotation in degrees (clockwise) and mirroring flags"""

    rotation_deg: float = Field(0.0, allow_inf_nan=False)
    flip_h: bool = False
    flip_v: bool = False


class OutputParams(BaseModel):
    """Encoding parameters"""

    format: str = Field(FormatConstants.DEFAULT_FORMAT.value, description="jpg|jpeg|png|webp|avif")
    quality: int = Field(ImageConstants.DEFAULT_QUALITY, description="1-100, clamped")

    @field_validator("format")
    @classmethod
    def normalize_format(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("quality")
    @classmethod
    def clamp_quality(cls, v: int) -> int:
        return max(ImageConstants.MIN_QUALITY, min(ImageConstants.MAX_QUALITY, v))


class TransformRequest(BaseModel):
    """Full transform request handed to the orchestrator"""

    resize: Optional[ResizeParams] = None
    crop: Optional[CropParams] = None
    rotate_flip: Optional[RotateFlipParams] = None
    output: OutputParams = Field(default_factory=OutputParams)

    def operations(self) -> list:
        """All geometric operations present on the request."""
        present = []
        if self.resize is not None:
            present.append(TransformOperation.RESIZE)
        if self.crop is not None:
            present.append(TransformOperation.CROP)
        if self.rotate_flip is not None:
            present.append(TransformOperation.ROTATE_FLIP)
        return present

    @property
    def operation(self) -> TransformOperation:
        present = self.operations()
        return present[0] if present else TransformOperation.NONE

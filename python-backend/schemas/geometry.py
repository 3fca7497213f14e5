"""
Geometry preview API models.

Lets a client ask the server for the same numbers the pipeline would use,
without sending any pixels.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .common import CropRect


class ResizeFitRequest(BaseModel):
    """Source size and target box"""

    source_width: int = Field(..., gt=0)
    source_height: int = Field(..., gt=0)
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)


class ResizeFitResponse(BaseModel):
    """Canvas, draw size and draw offset for a contain-fit resize"""

    canvas_width: int
    canvas_height: int
    draw_width: int
    draw_height: int
    offset_x: int
    offset_y: int


class RotatedBoundsRequest(BaseModel):
    """Source size and rotation"""

    source_width: int = Field(..., gt=0)
    source_height: int = Field(..., gt=0)
    rotation_deg: float = Field(0.0, allow_inf_nan=False)


class RotatedBoundsResponse(BaseModel):
    """Axis-aligned box enclosing the rotated source"""

    width: int
    height: int


class CropRectangleRequest(BaseModel):
    """Interactive crop state"""

    source_width: int = Field(..., gt=0)
    source_height: int = Field(..., gt=0)
    zoom: float = Field(1.0, gt=0, allow_inf_nan=False)
    pan_x: float = Field(0.0, allow_inf_nan=False)
    pan_y: float = Field(0.0, allow_inf_nan=False)
    rotation_deg: float = Field(0.0, allow_inf_nan=False)
    viewport_aspect: Optional[float] = Field(
        None, gt=0, allow_inf_nan=False, description="Width/height, None for free"
    )


class CropRectangleResponse(BaseModel):
    """Crop rectangle in source pixels"""

    crop: CropRect

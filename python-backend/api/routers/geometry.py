"""
Geometry API Router - Pipeline numbers without pixels
"""

import logging

from fastapi import APIRouter

from api.exceptions import safe_endpoint
from core.image.geometry import crop_rectangle, resize_fit, rotated_bounding_box
from schemas import (
    CropRectangleRequest,
    CropRectangleResponse,
    ResizeFitRequest,
    ResizeFitResponse,
    RotatedBoundsRequest,
    RotatedBoundsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/resize-fit")
@safe_endpoint
async def preview_resize_fit(request: ResizeFitRequest) -> ResizeFitResponse:
    """Contain-fit canvas, draw size and offset for a target box."""
    fit = resize_fit(request.source_width, request.source_height, request.width, request.height)
    return ResizeFitResponse(
        canvas_width=fit.canvas_width,
        canvas_height=fit.canvas_height,
        draw_width=fit.draw_width,
        draw_height=fit.draw_height,
        offset_x=fit.offset_x,
        offset_y=fit.offset_y,
    )


@router.post("/rotated-bounds")
@safe_endpoint
async def preview_rotated_bounds(request: RotatedBoundsRequest) -> RotatedBoundsResponse:
    """Axis-aligned bounding box of a rotated source."""
    width, height = rotated_bounding_box(
        request.source_width, request.source_height, request.rotation_deg
    )
    return RotatedBoundsResponse(width=width, height=height)


@router.post("/crop-rectangle")
@safe_endpoint
async def preview_crop_rectangle(request: CropRectangleRequest) -> CropRectangleResponse:
    """Source-pixel rectangle selected by an interactive crop viewport."""
    rect = crop_rectangle(
        request.source_width,
        request.source_height,
        zoom=request.zoom,
        pan_x=request.pan_x,
        pan_y=request.pan_y,
        rotation_deg=request.rotation_deg,
        viewport_aspect=request.viewport_aspect,
    )
    logger.debug(f"Crop preview {request.model_dump()} -> {rect.to_dict()}")
    return CropRectangleResponse(crop=rect)

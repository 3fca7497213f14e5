"""
Schemas Package

Pydantic models for data validation and serialization, organized by domain.

These schemas are shared across all application layers:
- API (routers, dependencies)
- Services (orchestration)
- Core (geometry and raster work)
"""

# Re-export enums from centralized location for convenience
from core.enums import ErrorKind, OutputFormat, PipelineState, TransformOperation

# Common models (core data structures)
from .common import CropRect, ErrorResponse

# Geometry preview models
from .geometry import (
    CropRectangleRequest,
    CropRectangleResponse,
    ResizeFitRequest,
    ResizeFitResponse,
    RotatedBoundsRequest,
    RotatedBoundsResponse,
)

# System models
from .system import SystemStatus

# Transform request models
from .transform import (
    CropParams,
    CropViewport,
    OutputParams,
    ResizeParams,
    RotateFlipParams,
    TransformRequest,
)

# Explicitly declare public API for re-export
__all__ = [
    # Common models
    "CropRect",
    "ErrorResponse",
    # Transform models
    "CropParams",
    "CropViewport",
    "OutputParams",
    "ResizeParams",
    "RotateFlipParams",
    "TransformRequest",
    # Geometry models
    "CropRectangleRequest",
    "CropRectangleResponse",
    "ResizeFitRequest",
    "ResizeFitResponse",
    "RotatedBoundsRequest",
    "RotatedBoundsResponse",
    # System models
    "SystemStatus",
    # Enums (re-exported from core.enums)
    "ErrorKind",
    "OutputFormat",
    "PipelineState",
    "TransformOperation",
]

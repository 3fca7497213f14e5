"""
Common data structures shared across the API, services and core layers.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class CropRect(BaseModel):
    """
    Axis-aligned rectangle in source pixel coordinates.

    Used both for explicit crop requests and for rectangles computed from an
    interactive crop state.
    """

    x: int = Field(..., ge=0, description="Left edge")
    y: int = Field(..., ge=0, description="Top edge")
    width: int = Field(..., gt=0, description="Width")
    height: int = Field(..., gt=0, description="Height")

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def full(cls, width: int, height: int) -> "CropRect":
        """Rectangle covering a whole image."""
        return cls(x=0, y=0, width=width, height=height)

    @property
    def x2(self) -> int:
        """Right edge (exclusive)."""
        return self.x + self.width

    @property
    def y2(self) -> int:
        """Bottom edge (exclusive)."""
        return self.y + self.height

    def is_within(self, image_width: int, image_height: int) -> bool:
        """Check the rectangle lies entirely inside an image."""
        return self.x2 <= image_width and self.y2 <= image_height

    def clip(self, image_width: int, image_height: int) -> Optional["CropRect"]:
        """
        Intersect with image bounds.

        Returns:
            Clipped rectangle, or None when nothing of it lies inside the image
        """
        x1 = max(0, min(self.x, image_width))
        y1 = max(0, min(self.y, image_height))
        x2 = max(0, min(self.x2, image_width))
        y2 = max(0, min(self.y2, image_height))

        if x2 <= x1 or y2 <= y1:
            return None
        return CropRect(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


class ErrorResponse(BaseModel):
    """Error body returned for every failed request"""

    error: str
    kind: Optional[str] = None
    details: Optional[str] = None

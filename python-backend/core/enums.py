"""
Centralized enums for the Image Utility Server.

Shared by schemas, services and the API layer so that string values used on
the wire are defined in exactly one place.
"""

from enum import Enum


class OutputFormat(str, Enum):
    """Container formats the encoder can produce."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"

    @property
    def supports_alpha(self) -> bool:
        return self is not OutputFormat.JPEG

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return "jpg" if self is OutputFormat.JPEG else self.value


class ErrorKind(str, Enum):
    """Failure taxonomy reported to callers."""

    INVALID_PARAMETERS = "InvalidParameters"
    EMPTY_CROP = "EmptyCrop"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    PAYLOAD_TOO_LARGE = "PayloadTooLarge"
    DECODE_FAILED = "DecodeFailed"
    ENCODE_FAILED = "EncodeFailed"
    BACKGROUND_REMOVAL_FAILED = "BackgroundRemovalFailed"


class PipelineState(str, Enum):
    """Lifecycle states of a single transform request."""

    RECEIVED = "received"
    VALIDATED = "validated"
    GEOMETRY_COMPUTED = "geometry_computed"
    COMPOSITED = "composited"
    ENCODED = "encoded"
    DONE = "done"
    FAILED = "failed"


class TransformOperation(str, Enum):
    """Geometric operation carried by a transform request."""

    NONE = "none"
    RESIZE = "resize"
    CROP = "crop"
    ROTATE_FLIP = "rotate_flip"


class AffineOp(str, Enum):
    """Primitive affine steps, applied in the order given."""

    TRANSLATE = "translate"
    ROTATE = "rotate"
    SCALE = "scale"

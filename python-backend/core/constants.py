"""
Constants and configuration values for the Image Utility Server.
Centralizes all magic numbers and configuration constants.
"""

from core.enums import OutputFormat


# Image Processing Constants
class ImageConstants:
    """Constants related to image decoding and transforms."""

    # Dimensions
    MAX_IMAGE_DIMENSION = 10000
    MIN_IMAGE_DIMENSION = 1
    MAX_IMAGE_PIXELS = 178_956_970  # Pillow's default decompression bomb limit

    # Quality
    DEFAULT_QUALITY = 80
    MIN_QUALITY = 1
    MAX_QUALITY = 100
    EXPORT_JPEG_QUALITY = 92  # Matches the browser canvas toBlob default

    # PNG compression effort range
    PNG_MIN_COMPRESS_LEVEL = 0
    PNG_MAX_COMPRESS_LEVEL = 9

    # Floating point noise tolerance when snapping to whole pixels
    PIXEL_SNAP_DECIMALS = 6

    # Padding colors (BGR / BGRA)
    TRANSPARENT_BGRA = (0, 0, 0, 0)
    OPAQUE_BLACK_BGR = (0, 0, 0)


# Format Constants
class FormatConstants:
    """Constants related to output formats."""

    DEFAULT_FORMAT = OutputFormat.JPEG

    # Accepted spellings on the wire
    FORMAT_ALIASES = {
        "jpg": OutputFormat.JPEG,
        "jpeg": OutputFormat.JPEG,
        "png": OutputFormat.PNG,
        "webp": OutputFormat.WEBP,
        "avif": OutputFormat.AVIF,
    }

    # Pillow save() format names
    PIL_FORMAT_NAMES = {
        OutputFormat.JPEG: "JPEG",
        OutputFormat.PNG: "PNG",
        OutputFormat.WEBP: "WEBP",
        OutputFormat.AVIF: "AVIF",
    }

    MIME_ALIASES = {
        "image/jpg": OutputFormat.JPEG,
        "image/pjpeg": OutputFormat.JPEG,
    }


# Interactive Editing Constants
class EditorConstants:
    """Constants for the interactive crop and rotate/flip editors."""

    MIN_ZOOM = 1.0
    MAX_ZOOM = 3.0
    ZOOM_STEP = 0.1

    ROTATION_STEP_DEG = 90
    FULL_TURN_DEG = 360

    ASPECT_PRESETS = {
        "Free": None,
        "16:9": 16 / 9,
        "4:3": 4 / 3,
        "1:1": 1.0,
        "2:3": 2 / 3,
    }
    DEFAULT_ASPECT = 16 / 9

    CROP_PREFIX = "cropped-"
    EDIT_PREFIX = "edited-"
    CONVERT_PREFIX = "converted-"
    BACKGROUND_PREFIX = "nobg-"


# Background Removal Constants
class BackgroundRemovalConstants:
    """Constants for the background removal collaborator."""

    DEFAULT_MODEL = "u2net"
    PROGRESS_TOTAL = 100


# API Constants
class APIConstants:
    """Constants for API endpoints."""

    # File uploads
    MAX_UPLOAD_SIZE_MB = 10
    UPLOAD_CHUNK_SIZE = 1024 * 1024

    # Status used when the client went away before the response was ready
    CLIENT_CLOSED_REQUEST = 499

    DEFAULT_PORT = 5000
    API_VERSION = "v1"


# System Constants
class SystemConstants:
    """Constants for system operations."""

    # Logging
    LOG_LEVEL_DEFAULT = "INFO"
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

"""
Shared FastAPI dependencies for the Image Utility Server.
Centralizes app-state access, upload reading and form field parsing.
"""

import logging
import math
from typing import Optional, Type, TypeVar
from urllib.parse import quote

from fastapi import HTTPException, Request, UploadFile
from pydantic import BaseModel, ValidationError

from api.exceptions import InvalidParametersException, PayloadTooLargeException
from config import Settings
from core.constants import APIConstants
from services.background_service import BackgroundRemovalService
from services.transform_service import TransformService

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _app_state(request: Request, name: str):
    try:
        return getattr(request.app.state, name)
    except AttributeError as e:
        logger.error(f"{name} not initialized in app state: {e}")
        raise HTTPException(
            status_code=500, detail={"error": f"Internal server error: {name} not initialized"}
        )


def get_app_settings(request: Request) -> Settings:
    """Get Settings instance."""
    return _app_state(request, "settings")


def get_transform_service(request: Request) -> TransformService:
    """Get TransformService instance."""
    return _app_state(request, "transform_service")


def get_background_service(request: Request) -> BackgroundRemovalService:
    """Get BackgroundRemovalService instance."""
    return _app_state(request, "background_service")


async def read_upload(image: Optional[UploadFile], max_bytes: int) -> bytes:
    """
    Read an uploaded file, enforcing the size limit before anything is decoded.

    Args:
        image: Multipart file (None when the field is missing)
        max_bytes: Upload limit in bytes

    Returns:
        Raw file bytes

    Raises:
        InvalidParametersException: Missing or empty upload
        PayloadTooLargeException: Upload above the limit
    """
    if image is None:
        raise InvalidParametersException("No image file provided")

    if image.size is not None and image.size > max_bytes:
        raise PayloadTooLargeException(image.size, max_bytes)

    chunks = []
    total = 0
    while True:
        chunk = await image.read(APIConstants.UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise PayloadTooLargeException(total, max_bytes)
        chunks.append(chunk)

    if total == 0:
        raise InvalidParametersException("Empty image upload")

    return b"".join(chunks)


def _blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def form_int(name: str, value: Optional[str]) -> Optional[int]:
    """Parse an optional integer form field; empty strings count as absent."""
    if _blank(value):
        return None
    try:
        return int(value.strip())
    except ValueError:
        raise InvalidParametersException(f"{name} must be an integer", details=f"Got {value!r}")


def form_float(name: str, value: Optional[str]) -> Optional[float]:
    """Parse an optional number form field; empty strings count as absent."""
    if _blank(value):
        return None
    try:
        result = float(value.strip())
    except ValueError:
        raise InvalidParametersException(f"{name} must be a number", details=f"Got {value!r}")
    if not math.isfinite(result):
        raise InvalidParametersException(f"{name} must be a finite number", details=f"Got {value!r}")
    return result


def form_bool(name: str, value: Optional[str], default: bool = False) -> bool:
    """Parse a boolean form field (true/false, 1/0, yes/no, on/off)."""
    if _blank(value):
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise InvalidParametersException(f"{name} must be a boolean", details=f"Got {value!r}")


def form_str(value: Optional[str]) -> Optional[str]:
    return None if _blank(value) else value.strip()


def build_model(model: Type[M], **fields) -> M:
    """
    Instantiate a pydantic model, reporting validation errors as
    InvalidParameters. Fields passed as None fall back to model defaults.
    """
    try:
        return model(**{key: value for key, value in fields.items() if value is not None})
    except ValidationError as e:
        raise InvalidParametersException(
            f"Invalid {model.__name__} parameters", details=str(e.errors())
        ) from e


def content_disposition(filename: str) -> str:
    """Attachment header value that survives non-ASCII filenames."""
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def default_if_none(value, default):
    return default if value is None else value

"""
Exception taxonomy and FastAPI exception handlers.

Every failure a caller can observe is one of the kinds in core.enums.ErrorKind.
Handlers render them as ``{"error": ..., "kind": ..., "details": ...}``.
"""

import functools
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.enums import ErrorKind

logger = logging.getLogger(__name__)


class ImageToolException(Exception):
    """Base exception for all image pipeline failures."""

    kind: ErrorKind = ErrorKind.ENCODE_FAILED
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        content = {"error": self.message, "kind": self.kind.value}
        if self.details:
            content["details"] = self.details
        return content


class InvalidParametersException(ImageToolException):
    """Bad or missing numeric/enum fields, or a missing image payload."""

    kind = ErrorKind.INVALID_PARAMETERS
    status_code = 400


class EmptyCropException(ImageToolException):
    """Crop rectangle degenerates to zero width or height."""

    kind = ErrorKind.EMPTY_CROP
    status_code = 400

    def __init__(self, message: str = "Crop rectangle is empty", details: Optional[str] = None):
        super().__init__(message, details)


class UnsupportedFormatException(ImageToolException):
    """Requested output format is not one of jpeg/png/webp/avif."""

    kind = ErrorKind.UNSUPPORTED_FORMAT
    status_code = 400

    def __init__(self, format_name: str):
        super().__init__(
            f"Unsupported output format: {format_name}",
            details="Supported formats: jpg, jpeg, png, webp, avif",
        )
        self.format_name = format_name


class PayloadTooLargeException(ImageToolException):
    """Upload exceeds the configured size limit."""

    kind = ErrorKind.PAYLOAD_TOO_LARGE
    status_code = 413

    def __init__(self, size: int, limit: int):
        super().__init__(
            "Image file too large",
            details=f"Upload is {size} bytes, limit is {limit} bytes",
        )
        self.size = size
        self.limit = limit


class DecodeFailedException(ImageToolException):
    """Source bytes are corrupt or not a supported image."""

    kind = ErrorKind.DECODE_FAILED
    status_code = 500


class EncodeFailedException(ImageToolException):
    """Output could not be produced."""

    kind = ErrorKind.ENCODE_FAILED
    status_code = 500


class BackgroundRemovalFailedException(ImageToolException):
    """The background removal collaborator rejected the image."""

    kind = ErrorKind.BACKGROUND_REMOVAL_FAILED
    status_code = 500


def safe_endpoint(func):
    """
    Decorator for route handlers.

    Lets taxonomy and HTTP exceptions through unchanged and converts anything
    else into a generic processing failure, so a handler never leaks a raw
    traceback to the client.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (ImageToolException, HTTPException):
            raise
        except Exception as e:
            logger.error(f"Unhandled error in {func.__name__}: {e}", exc_info=True)
            raise EncodeFailedException("Image processing failed", details=str(e)) from e

    return wrapper


async def image_tool_exception_handler(request: Request, exc: ImageToolException) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"{exc.kind.value} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Request validation failed on {request.url.path}: {exc.errors()}")
    error = InvalidParametersException("Invalid request parameters", details=str(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    content = detail if isinstance(detail, dict) else {"error": str(detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the taxonomy handlers to the application."""
    app.add_exception_handler(ImageToolException, image_tool_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

"""
Process API Router - Resize/convert, crop and rotate/flip uploads
"""

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from api.dependencies import (
    build_model,
    content_disposition,
    default_if_none,
    form_bool,
    form_float,
    form_int,
    form_str,
    get_app_settings,
    get_transform_service,
    read_upload,
)
from api.exceptions import InvalidParametersException, safe_endpoint
from config import Settings
from core.constants import APIConstants, EditorConstants, ImageConstants
from core.editor import CropState, aspect_for_preset
from core.image.encoder import OutputImage, parse_output_format
from core.utils import export_filename
from schemas import (
    CropParams,
    OutputParams,
    ResizeParams,
    RotateFlipParams,
    TransformRequest,
)
from services.transform_service import TransformService

logger = logging.getLogger(__name__)

router = APIRouter()


async def run_transform(request: Request, func: Callable, *args) -> Optional[OutputImage]:
    """
    Run a blocking pipeline call on the thread pool.

    Returns None when the client went away before dispatch or before the
    result was ready; the result is then dropped.
    """
    if await request.is_disconnected():
        logger.info(f"Client disconnected before {request.url.path} started")
        return None

    output = await run_in_threadpool(func, *args)

    if await request.is_disconnected():
        logger.info(f"Client disconnected, dropping {request.url.path} result")
        return None
    return output


def image_response(output: Optional[OutputImage], filename: str) -> Response:
    if output is None:
        return Response(status_code=APIConstants.CLIENT_CLOSED_REQUEST)
    return Response(
        content=output.data,
        media_type=output.mime_type,
        headers={
            "Content-Disposition": content_disposition(filename),
            "X-Image-Width": str(output.width),
            "X-Image-Height": str(output.height),
        },
    )


def parse_aspect(value: Optional[str]) -> Optional[float]:
    """Aspect as a preset label ("16:9", "Free") or a positive number."""
    if value is None:
        return None
    if value in EditorConstants.ASPECT_PRESETS:
        return aspect_for_preset(value)
    aspect = form_float("aspect", value)
    if aspect is not None and aspect <= 0:
        raise InvalidParametersException("aspect must be positive", details=f"Got {value!r}")
    return aspect


@router.post("/process")
@safe_endpoint
async def process_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
    format: Optional[str] = Form(None),
    quality: Optional[str] = Form(None),
    settings: Settings = Depends(get_app_settings),
    service: TransformService = Depends(get_transform_service),
) -> Response:
    """
    Resize (contain-fit) and/or convert an uploaded image.

    Without width and height the image is only re-encoded.
    """
    payload = await read_upload(image, settings.processing.max_upload_bytes)

    width_px = form_int("width", width)
    height_px = form_int("height", height)
    resize = None
    if width_px is not None or height_px is not None:
        resize = build_model(ResizeParams, width=width_px, height=height_px)

    output_params = build_model(
        OutputParams,
        format=form_str(format) or settings.processing.default_format.value,
        quality=default_if_none(form_int("quality", quality), settings.processing.default_quality),
    )
    transform = TransformRequest(resize=resize, output=output_params)

    output = await run_transform(request, service.process, payload, transform)
    filename = export_filename(
        EditorConstants.CONVERT_PREFIX,
        image.filename,
        parse_output_format(output_params.format).extension,
    )
    return image_response(output, filename)


@router.post("/crop")
@safe_endpoint
async def crop_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    x: Optional[str] = Form(None),
    y: Optional[str] = Form(None),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
    zoom: Optional[str] = Form(None),
    pan_x: Optional[str] = Form(None),
    pan_y: Optional[str] = Form(None),
    aspect: Optional[str] = Form(None),
    rotation: Optional[str] = Form(None),
    format: Optional[str] = Form(None),
    quality: Optional[str] = Form(None),
    settings: Settings = Depends(get_app_settings),
    service: TransformService = Depends(get_transform_service),
) -> Response:
    """
    Crop an uploaded image.

    Takes either an explicit rectangle (x, y, width, height) or an
    interactive viewport (zoom, pan_x, pan_y, aspect). The output keeps the
    source format unless ``format`` is given.
    """
    payload = await read_upload(image, settings.processing.max_upload_bytes)

    rect = {
        "x": form_int("x", x),
        "y": form_int("y", y),
        "width": form_int("width", width),
        "height": form_int("height", height),
    }
    rotation_deg = form_float("rotation", rotation) or 0.0

    if any(value is not None for value in rect.values()):
        missing = [name for name, value in rect.items() if value is None]
        if missing:
            raise InvalidParametersException(
                "Crop rectangle requires x, y, width and height",
                details=f"Missing: {', '.join(missing)}",
            )
        crop = build_model(CropParams, rotation_deg=rotation_deg, **rect)
    else:
        state = CropState(
            zoom=default_if_none(form_float("zoom", zoom), EditorConstants.MIN_ZOOM),
            pan_x=form_float("pan_x", pan_x) or 0.0,
            pan_y=form_float("pan_y", pan_y) or 0.0,
            rotation_deg=rotation_deg,
            aspect=parse_aspect(form_str(aspect)),
        )
        crop = service.viewport_crop(payload, state)

    requested_format = form_str(format)
    output_format = (
        parse_output_format(requested_format) if requested_format else service.source_format(payload)
    )
    output_params = build_model(
        OutputParams,
        format=output_format.value,
        quality=default_if_none(form_int("quality", quality), ImageConstants.EXPORT_JPEG_QUALITY),
    )
    transform = TransformRequest(crop=crop, output=output_params)

    output = await run_transform(request, service.process, payload, transform)
    filename = export_filename(
        EditorConstants.CROP_PREFIX,
        image.filename,
        output_format.extension if requested_format else None,
    )
    return image_response(output, filename)


@router.post("/rotate-flip")
@safe_endpoint
async def rotate_flip_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    rotation: Optional[str] = Form(None),
    flip_h: Optional[str] = Form(None),
    flip_v: Optional[str] = Form(None),
    format: Optional[str] = Form(None),
    quality: Optional[str] = Form(None),
    settings: Settings = Depends(get_app_settings),
    service: TransformService = Depends(get_transform_service),
) -> Response:
    """Rotate (clockwise degrees) and mirror an uploaded image."""
    payload = await read_upload(image, settings.processing.max_upload_bytes)

    rotate_flip = build_model(
        RotateFlipParams,
        rotation_deg=form_float("rotation", rotation) or 0.0,
        flip_h=form_bool("flip_h", flip_h),
        flip_v=form_bool("flip_v", flip_v),
    )

    requested_format = form_str(format)
    output_format = (
        parse_output_format(requested_format) if requested_format else service.source_format(payload)
    )
    output_params = build_model(
        OutputParams,
        format=output_format.value,
        quality=default_if_none(form_int("quality", quality), ImageConstants.EXPORT_JPEG_QUALITY),
    )
    transform = TransformRequest(rotate_flip=rotate_flip, output=output_params)

    output = await run_transform(request, service.process, payload, transform)
    filename = export_filename(
        EditorConstants.EDIT_PREFIX,
        image.filename,
        output_format.extension if requested_format else None,
    )
    return image_response(output, filename)

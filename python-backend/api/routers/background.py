"""
Background API Router - Background removal
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import Response, StreamingResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import (
    content_disposition,
    get_app_settings,
    get_background_service,
    read_upload,
)
from api.exceptions import safe_endpoint
from config import Settings
from core.constants import APIConstants, EditorConstants
from core.enums import OutputFormat
from core.utils import export_filename
from services.background_service import BackgroundRemovalService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
@safe_endpoint
async def remove_background(
    request: Request,
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_app_settings),
    service: BackgroundRemovalService = Depends(get_background_service),
) -> Response:
    """Remove the background of an uploaded image and return a PNG."""
    payload = await read_upload(image, settings.processing.max_upload_bytes)

    if await request.is_disconnected():
        logger.info("Client disconnected before background removal started")
        return Response(status_code=APIConstants.CLIENT_CLOSED_REQUEST)

    output = await run_in_threadpool(service.remove_background, payload)

    if await request.is_disconnected():
        logger.info("Client disconnected, dropping background removal result")
        return Response(status_code=APIConstants.CLIENT_CLOSED_REQUEST)

    filename = export_filename(
        EditorConstants.BACKGROUND_PREFIX, image.filename, OutputFormat.PNG.extension
    )
    return Response(
        content=output.data,
        media_type=output.mime_type,
        headers={"Content-Disposition": content_disposition(filename)},
    )


@router.post("/stream")
@safe_endpoint
async def remove_background_stream(
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_app_settings),
    service: BackgroundRemovalService = Depends(get_background_service),
) -> StreamingResponse:
    """
    Remove the background while streaming progress.

    Responds with newline-delimited JSON: ``progress`` events with a
    percentage, then one ``done`` event carrying the PNG as base64, or one
    ``error`` event.
    """
    payload = await read_upload(image, settings.processing.max_upload_bytes)
    service.validate_payload(payload)
    filename = export_filename(
        EditorConstants.BACKGROUND_PREFIX, image.filename, OutputFormat.PNG.extension
    )

    async def events():
        async for event in service.remove_background_stream(payload):
            data = event.to_dict()
            if event.output is not None:
                data["filename"] = filename
            yield json.dumps(data) + "\n"

    return StreamingResponse(events(), media_type="application/x-ndjson")

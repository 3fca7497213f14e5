"""
Transform Service - Orchestrates one image transform request.

decode -> geometry -> composite -> encode, validated up front, with a small
state machine per request so a job is either done or failed, never partial.
"""

import logging
import uuid
from typing import List, Optional

from api.exceptions import (
    DecodeFailedException,
    EncodeFailedException,
    ImageToolException,
    InvalidParametersException,
    PayloadTooLargeException,
    UnsupportedFormatException,
)
from config import ProcessingConfig
from core.constants import ImageConstants
from core.editor import CropState
from core.enums import OutputFormat, PipelineState
from core.image.converters import decode_image, probe_image
from core.image.encoder import OutputImage, encode_image, format_for_mime_type, parse_output_format
from core.image.geometry import compute_geometry
from core.image.processors import composite, flatten_alpha
from core.utils.decorators import timer
from schemas import CropParams, TransformRequest

logger = logging.getLogger(__name__)

_NEXT_STATE = {
    PipelineState.RECEIVED: PipelineState.VALIDATED,
    PipelineState.VALIDATED: PipelineState.GEOMETRY_COMPUTED,
    PipelineState.GEOMETRY_COMPUTED: PipelineState.COMPOSITED,
    PipelineState.COMPOSITED: PipelineState.ENCODED,
    PipelineState.ENCODED: PipelineState.DONE,
}

_TERMINAL_STATES = (PipelineState.DONE, PipelineState.FAILED)


class TransformJob:
    """
    Lifecycle of a single transform request.

    received -> validated -> geometry_computed -> composited -> encoded -> done,
    with failed reachable from every non-terminal state.
    """

    def __init__(self, job_id: Optional[str] = None):
        self.id = job_id or uuid.uuid4().hex[:8]
        self.state = PipelineState.RECEIVED
        self.history: List[PipelineState] = [PipelineState.RECEIVED]
        self.error: Optional[ImageToolException] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATES

    def advance(self, state: PipelineState) -> None:
        """
        Move to the next pipeline state.

        Raises:
            RuntimeError: If ``state`` is not the successor of the current state
        """
        expected = _NEXT_STATE.get(self.state)
        if state is not expected:
            raise RuntimeError(
                f"Illegal transition for job {self.id}: {self.state.value} -> {state.value}"
            )
        logger.debug(f"Job {self.id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: ImageToolException) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Job {self.id} already finished as {self.state.value}")
        logger.debug(f"Job {self.id}: {self.state.value} -> failed ({error.kind.value})")
        self.state = PipelineState.FAILED
        self.history.append(PipelineState.FAILED)
        self.error = error


class TransformService:
    """
    Stateless transform pipeline.

    Safe to call from several worker threads at once: each call owns its
    decoded source, intermediate rasters and output buffer.
    """

    def __init__(
        self,
        max_upload_bytes: int,
        max_dimension: int = ImageConstants.MAX_IMAGE_DIMENSION,
        max_image_pixels: Optional[int] = ImageConstants.MAX_IMAGE_PIXELS,
    ):
        self.max_upload_bytes = max_upload_bytes
        self.max_dimension = max_dimension
        self.max_image_pixels = max_image_pixels

    @classmethod
    def from_config(cls, config: ProcessingConfig) -> "TransformService":
        return cls(
            max_upload_bytes=config.max_upload_bytes,
            max_dimension=config.max_dimension,
            max_image_pixels=config.max_image_pixels,
        )

    def validate_payload(self, payload: Optional[bytes]) -> None:
        """
        Check the upload before any raster work.

        Raises:
            InvalidParametersException: Missing or empty payload
            PayloadTooLargeException: Payload above the upload limit
        """
        if payload is None:
            raise InvalidParametersException("No image file provided")
        if len(payload) == 0:
            raise InvalidParametersException("Empty image upload")
        if len(payload) > self.max_upload_bytes:
            raise PayloadTooLargeException(len(payload), self.max_upload_bytes)

    def _check_dimension(self, name: str, value: Optional[int]) -> None:
        if value is not None and value > self.max_dimension:
            raise InvalidParametersException(
                f"{name} exceeds the maximum of {self.max_dimension} pixels",
                details=f"{name}={value}",
            )

    def validate(self, payload: Optional[bytes], request: TransformRequest) -> OutputFormat:
        """
        Validate a request.

        Returns:
            Parsed output format

        Raises:
            InvalidParametersException: Bad payload, dimensions or operations
            PayloadTooLargeException: Payload above the upload limit
            UnsupportedFormatException: Unknown output format
        """
        self.validate_payload(payload)

        operations = request.operations()
        if len(operations) > 1:
            raise InvalidParametersException(
                "Only one geometric operation per request is supported",
                details=f"Got: {', '.join(op.value for op in operations)}",
            )

        if request.resize is not None:
            self._check_dimension("width", request.resize.width)
            self._check_dimension("height", request.resize.height)
        if request.crop is not None:
            self._check_dimension("width", request.crop.width)
            self._check_dimension("height", request.crop.height)

        return parse_output_format(request.output.format)

    def source_format(self, payload: bytes) -> OutputFormat:
        """Container format of an upload, PNG when it has no encoder here."""
        info = probe_image(payload)
        try:
            return format_for_mime_type(info.mime_type or "")
        except UnsupportedFormatException:
            logger.debug(f"No encoder for source format {info.format}, defaulting to png")
            return OutputFormat.PNG

    def viewport_crop(self, payload: Optional[bytes], state: CropState) -> CropParams:
        """
        Turn an interactive crop state into explicit crop parameters for an
        upload, reading only the image header.
        """
        self.validate_payload(payload)
        info = probe_image(payload)
        return state.to_params(info.width, info.height)

    @staticmethod
    def _unexpected_failure(state: PipelineState, error: Exception) -> ImageToolException:
        if state in (PipelineState.RECEIVED, PipelineState.VALIDATED):
            return DecodeFailedException("Image processing failed", details=str(error))
        return EncodeFailedException("Image processing failed", details=str(error))

    def process(self, payload: Optional[bytes], request: TransformRequest) -> OutputImage:
        """
        Run the full pipeline for one request.

        Args:
            payload: Encoded source image bytes
            request: Transform request (at most one geometric operation)

        Returns:
            Encoded OutputImage

        Raises:
            ImageToolException: Exactly one taxonomy error on failure
        """
        job = TransformJob()

        with timer() as t:
            try:
                output_format = self.validate(payload, request)
                job.advance(PipelineState.VALIDATED)

                source = decode_image(payload, self.max_image_pixels)
                geometry = compute_geometry(request, source.width, source.height)
                job.advance(PipelineState.GEOMETRY_COMPUTED)

                raster = composite(
                    source.pixels, geometry, transparent=output_format.supports_alpha
                )
                if not output_format.supports_alpha:
                    raster = flatten_alpha(raster)
                job.advance(PipelineState.COMPOSITED)

                output = encode_image(raster, output_format, request.output.quality)
                job.advance(PipelineState.ENCODED)
                job.advance(PipelineState.DONE)

            except ImageToolException as e:
                job.fail(e)
                logger.warning(f"Job {job.id} failed: {e.kind.value}: {e.message}")
                raise
            except Exception as e:
                error = self._unexpected_failure(job.state, e)
                job.fail(error)
                logger.error(f"Job {job.id} failed unexpectedly: {e}", exc_info=True)
                raise error from e

        logger.info(
            f"Job {job.id}: {request.operation.value} {source.width}x{source.height} -> "
            f"{output.format.value} {output.width}x{output.height}, "
            f"{output.size_bytes} bytes in {t['ms']} ms"
        )
        return output

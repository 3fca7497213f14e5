"""
Background Removal Service - Runs the removal collaborator for one upload.

The collaborator runs on a worker thread and reports progress through a
callback. ProgressChannel carries those reports to the event loop as
monotonically non-decreasing percentages; RemovalSession makes sure only the
newest removal of an image session delivers a result.
"""

import asyncio
import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, AsyncIterator, Dict, Optional

from PIL import Image
from starlette.concurrency import run_in_threadpool

from api.exceptions import (
    BackgroundRemovalFailedException,
    ImageToolException,
    InvalidParametersException,
    PayloadTooLargeException,
)
from core.background_removal import BackgroundRemover, ProgressCallback
from core.constants import BackgroundRemovalConstants, ImageConstants
from core.enums import OutputFormat
from core.image.converters import decode_image, numpy_to_pil, pil_to_numpy, to_base64
from core.image.encoder import OutputImage, encode_image
from core.utils.decorators import timer

logger = logging.getLogger(__name__)

STATUS_PROGRESS = "progress"
STATUS_DONE = "done"
STATUS_ERROR = "error"
STATUS_SUPERSEDED = "superseded"


def to_percent(current: float, total: float) -> int:
    """Convert a (current, total) report to an integer percentage in [0, 100]."""
    if total <= 0:
        return 0
    percent = int(current * BackgroundRemovalConstants.PROGRESS_TOTAL // total)
    return max(0, min(BackgroundRemovalConstants.PROGRESS_TOTAL, percent))


class MonotonicProgress:
    """
    Progress callback adapter that never reports a smaller percentage than
    it already reported. Safe to call from any thread.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._lock = Lock()
        self.percent = -1

    def __call__(self, current: float, total: float) -> None:
        percent = to_percent(current, total)
        with self._lock:
            if percent <= self.percent:
                return
            self.percent = percent
        if self._callback is not None:
            self._callback(percent, BackgroundRemovalConstants.PROGRESS_TOTAL)

    def complete(self) -> None:
        self(BackgroundRemovalConstants.PROGRESS_TOTAL, BackgroundRemovalConstants.PROGRESS_TOTAL)


@dataclass(frozen=True)
class ProgressEvent:
    """One message on a progress channel"""

    status: str
    percent: int = 0
    output: Optional[OutputImage] = None
    error: Optional[ImageToolException] = None

    @property
    def is_final(self) -> bool:
        return self.status != STATUS_PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status, "percent": self.percent}
        if self.output is not None:
            data["mime_type"] = self.output.mime_type
            data["width"] = self.output.width
            data["height"] = self.output.height
            data["image_base64"] = to_base64(self.output.data)
        if self.error is not None:
            data.update(self.error.to_dict())
        return data


class ProgressChannel:
    """
    One-way progress stream from a worker thread to the event loop.

    ``publish`` may be called from any thread; consumers ``async for`` over
    the channel until the final event (done, error or superseded). Must be
    created on the event loop that consumes it.
    """

    def __init__(self):
        self._loop = asyncio.get_running_loop()
        self._queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()
        self._progress = MonotonicProgress(self._forward)
        self._closed = False

    def _put(self, event: ProgressEvent) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def _forward(self, percent: int, total: int) -> None:
        if not self._closed:
            self._put(ProgressEvent(STATUS_PROGRESS, percent))

    def publish(self, current: float, total: float) -> None:
        self._progress(current, total)

    def _close(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("Progress channel already closed")
        self._closed = True
        self._put(event)

    def finish(self, output: OutputImage) -> None:
        self._close(ProgressEvent(STATUS_DONE, BackgroundRemovalConstants.PROGRESS_TOTAL, output=output))

    def fail(self, error: ImageToolException) -> None:
        self._close(ProgressEvent(STATUS_ERROR, max(self._progress.percent, 0), error=error))

    def supersede(self) -> None:
        self._close(ProgressEvent(STATUS_SUPERSEDED, max(self._progress.percent, 0)))

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.is_final:
                return


class RemovalSession:
    """
    At most one background removal per image session.

    ``begin`` hands out a token and supersedes every earlier one; a result is
    only accepted for the current token.
    """

    def __init__(self):
        self._lock = Lock()
        self._token = 0
        self.result: Optional[OutputImage] = None

    def begin(self) -> int:
        with self._lock:
            self._token += 1
            self.result = None
            return self._token

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._token

    def accept(self, token: int, result: OutputImage) -> bool:
        with self._lock:
            if token != self._token:
                logger.info(f"Discarding background removal result for superseded token {token}")
                return False
            self.result = result
            return True


class BackgroundRemovalService:
    """Calls the background remover exactly once per request; no retries."""

    def __init__(
        self,
        remover: BackgroundRemover,
        max_upload_bytes: int,
        max_image_pixels: Optional[int] = ImageConstants.MAX_IMAGE_PIXELS,
    ):
        self.remover = remover
        self.max_upload_bytes = max_upload_bytes
        self.max_image_pixels = max_image_pixels

    def validate_payload(self, payload: Optional[bytes]) -> None:
        if payload is None:
            raise InvalidParametersException("No image file provided")
        if len(payload) == 0:
            raise InvalidParametersException("Empty image upload")
        if len(payload) > self.max_upload_bytes:
            raise PayloadTooLargeException(len(payload), self.max_upload_bytes)

    def remove_background(
        self, payload: Optional[bytes], on_progress: Optional[ProgressCallback] = None
    ) -> OutputImage:
        """
        Remove the background of an encoded image.

        Args:
            payload: Encoded source image bytes
            on_progress: Optional callback receiving (percent, 100)

        Returns:
            PNG OutputImage with transparent background

        Raises:
            InvalidParametersException: Missing or empty payload
            PayloadTooLargeException: Payload above the upload limit
            DecodeFailedException: Unreadable source
            BackgroundRemovalFailedException: The remover failed
        """
        self.validate_payload(payload)
        source = decode_image(payload, self.max_image_pixels)
        progress = MonotonicProgress(on_progress)

        with timer() as t:
            try:
                result = self.remover(numpy_to_pil(source.pixels), progress)
            except Exception as e:
                logger.error(f"Background removal failed: {e}", exc_info=True)
                raise BackgroundRemovalFailedException(
                    "Failed to remove background", details=str(e)
                ) from e

        if not isinstance(result, Image.Image):
            raise BackgroundRemovalFailedException(
                "Failed to remove background",
                details=f"Remover returned {type(result).__name__}",
            )

        output = encode_image(
            pil_to_numpy(result.convert("RGBA")), OutputFormat.PNG, ImageConstants.DEFAULT_QUALITY
        )
        progress.complete()

        logger.info(
            f"Removed background from {source.width}x{source.height} image in {t['ms']} ms"
        )
        return output

    async def remove_background_stream(
        self, payload: Optional[bytes], session: Optional[RemovalSession] = None
    ) -> AsyncIterator[ProgressEvent]:
        """
        Run a removal on a worker thread and yield its progress events.

        The final event is ``done`` with the output, ``error`` with the
        taxonomy error, or ``superseded`` when a newer removal started on the
        same session in the meantime.
        """
        channel = ProgressChannel()
        token = session.begin() if session is not None else None

        async def run():
            try:
                output = await run_in_threadpool(self.remove_background, payload, channel.publish)
            except ImageToolException as e:
                channel.fail(e)
                return
            except Exception as e:
                logger.error(f"Background removal worker failed: {e}", exc_info=True)
                channel.fail(BackgroundRemovalFailedException("Failed to remove background", details=str(e)))
                return

            if session is not None and not session.accept(token, output):
                channel.supersede()
            else:
                channel.finish(output)

        task = asyncio.ensure_future(run())
        try:
            async for event in channel:
                yield event
        finally:
            if not task.done():
                # The worker thread finishes on its own; its result is dropped
                task.cancel()

"""
Background removal collaborator.

The model is treated as an opaque function: RGB(A) PIL image in, alpha-masked
RGBA PIL image out. RembgRemover wraps rembg behind that contract and reports
coarse progress through an ``on_progress(current, total)`` callback.
"""

import io
import logging
from threading import Lock
from typing import Callable, Dict, Optional

from PIL import Image

from core.constants import BackgroundRemovalConstants
from core.utils import log_duration

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
BackgroundRemover = Callable[[Image.Image, Optional[ProgressCallback]], Image.Image]


def _ignore_progress(current: int, total: int) -> None:
    pass


class RembgRemover:
    """
    Background remover backed by rembg.

    Model sessions are expensive to build, so they are cached per model name
    and shared by all instances.
    """

    _sessions: Dict[str, object] = {}
    _sessions_lock = Lock()

    # Progress steps: started, model ready, mask computed, done
    STEPS = 3

    def __init__(self, model_name: str = BackgroundRemovalConstants.DEFAULT_MODEL):
        self.model_name = model_name

    def _get_session(self):
        with self._sessions_lock:
            session = self._sessions.get(self.model_name)
            if session is None:
                # rembg pulls in onnxruntime; import it only when first needed
                from rembg import new_session

                logger.info(f"Loading background removal model '{self.model_name}'")
                session = new_session(self.model_name)
                self._sessions[self.model_name] = session
            return session

    @log_duration
    def __call__(
        self, image: Image.Image, on_progress: Optional[ProgressCallback] = None
    ) -> Image.Image:
        """
        Remove the background of an image.

        Args:
            image: Input PIL image
            on_progress: Optional progress callback (current, total)

        Returns:
            RGBA PIL image with the background made transparent
        """
        report = on_progress or _ignore_progress
        report(0, self.STEPS)

        session = self._get_session()
        report(1, self.STEPS)

        from rembg import remove

        result = remove(image, session=session)
        report(2, self.STEPS)

        if isinstance(result, (bytes, bytearray)):
            result = Image.open(io.BytesIO(result))

        output = result.convert("RGBA")
        report(self.STEPS, self.STEPS)
        return output

"""
Tests for background removal orchestration
"""

import asyncio
import base64
import io
import threading

import pytest
from PIL import Image

from api.exceptions import (
    BackgroundRemovalFailedException,
    DecodeFailedException,
    InvalidParametersException,
    PayloadTooLargeException,
)
from core.enums import OutputFormat
from services.background_service import (
    BackgroundRemovalService,
    MonotonicProgress,
    ProgressChannel,
    RemovalSession,
    to_percent,
)


def collect(stream):
    async def _collect():
        return [event async for event in stream]

    return asyncio.run(_collect())


class TestProgress:
    """Test progress conversion"""

    @pytest.mark.parametrize(
        "current,total,expected", [(0, 3, 0), (1, 3, 33), (3, 3, 100), (5, 3, 100), (1, 0, 0)]
    )
    def test_to_percent(self, current, total, expected):
        assert to_percent(current, total) == expected

    def test_monotonic(self):
        seen = []
        progress = MonotonicProgress(lambda percent, total: seen.append(percent))

        for current in (0, 2, 1, 2, 3):
            progress(current, 4)
        progress.complete()

        assert seen == [0, 50, 75, 100]

    def test_channel_delivers_across_threads(self):
        async def run():
            channel = ProgressChannel()

            def worker():
                for current in range(5):
                    channel.publish(current, 4)

            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()
            channel.supersede()
            return [event async for event in channel]

        events = asyncio.run(run())

        assert [event.percent for event in events[:-1]] == [0, 25, 50, 75, 100]
        assert events[-1].status == "superseded"

    def test_channel_closes_once(self):
        async def run():
            channel = ProgressChannel()
            channel.supersede()
            with pytest.raises(RuntimeError):
                channel.supersede()

        asyncio.run(run())


class TestRemovalSession:
    """Test superseding removals"""

    def test_newest_token_wins(self):
        session = RemovalSession()
        first = session.begin()
        second = session.begin()

        assert not session.accept(first, object())
        assert session.result is None
        assert session.is_current(second)

        result = object()
        assert session.accept(second, result)
        assert session.result is result


class TestBackgroundRemovalService:
    """Test the background removal service"""

    def test_returns_png_with_alpha(self, background_service, fake_remover, png_payload):
        output = background_service.remove_background(png_payload)

        image = Image.open(io.BytesIO(output.data))
        assert output.format is OutputFormat.PNG
        assert image.mode == "RGBA"
        assert image.size == (640, 480)
        assert fake_remover.calls == 1

    def test_progress_is_monotonic_and_completes(self, png_payload, remover_factory):
        service = BackgroundRemovalService(
            remover=remover_factory(steps=(0, 2, 1, 3, 2)), max_upload_bytes=10**7
        )
        seen = []

        service.remove_background(png_payload, lambda percent, total: seen.append(percent))

        assert seen == sorted(seen)
        assert seen[-1] == 100
        assert len(seen) == len(set(seen))

    def test_failure_is_mapped_and_not_retried(self, png_payload, remover_factory):
        remover = remover_factory(error=RuntimeError("model crashed"))
        service = BackgroundRemovalService(remover=remover, max_upload_bytes=10**7)

        with pytest.raises(BackgroundRemovalFailedException) as exc_info:
            service.remove_background(png_payload)

        assert "model crashed" in exc_info.value.details
        assert remover.calls == 1

    def test_missing_payload(self, background_service):
        with pytest.raises(InvalidParametersException):
            background_service.remove_background(None)

    def test_payload_too_large(self, png_payload, remover_factory):
        service = BackgroundRemovalService(remover=remover_factory(), max_upload_bytes=10)

        with pytest.raises(PayloadTooLargeException):
            service.remove_background(png_payload)

    def test_garbage_payload(self, background_service, fake_remover):
        with pytest.raises(DecodeFailedException):
            background_service.remove_background(b"garbage")

        assert fake_remover.calls == 0

    def test_stream_events(self, background_service, png_payload):
        events = collect(background_service.remove_background_stream(png_payload))

        percents = [event.percent for event in events]
        assert percents == sorted(percents)
        assert events[-1].status == "done"
        assert all(event.status == "progress" for event in events[:-1])

        data = events[-1].to_dict()
        png = base64.b64decode(data["image_base64"])
        assert Image.open(io.BytesIO(png)).format == "PNG"

    def test_stream_error_event(self, png_payload, remover_factory):
        service = BackgroundRemovalService(
            remover=remover_factory(error=ValueError("bad input")), max_upload_bytes=10**7
        )

        events = collect(service.remove_background_stream(png_payload))

        assert events[-1].status == "error"
        assert events[-1].to_dict()["kind"] == "BackgroundRemovalFailed"

    def test_stream_superseded(self, background_service, png_payload, remover_factory):
        session = RemovalSession()

        class Superseding(remover_factory):
            def __call__(self, image, on_progress=None):
                session.begin()  # a newer removal starts meanwhile
                return super().__call__(image, on_progress)

        background_service.remover = Superseding()

        events = collect(background_service.remove_background_stream(png_payload, session))

        assert events[-1].status == "superseded"
        assert session.result is None

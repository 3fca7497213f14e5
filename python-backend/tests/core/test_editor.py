"""
Tests for interactive editing state
"""

import io

import pytest
from PIL import Image

from api.exceptions import InvalidParametersException
from core.editor import CropState, PreviewSession, RotateFlipState, aspect_for_preset
from core.image.converters import SourceImage
from schemas import CropRect


class TestRotateFlipState:
    """Test rotate/flip value object"""

    def test_steps(self):
        state = RotateFlipState().rotate_right().rotate_right().rotate_left()

        assert state.rotation_deg == 90

    def test_toggles(self):
        state = RotateFlipState().toggle_flip_h().toggle_flip_v().toggle_flip_h()

        assert not state.flip_h
        assert state.flip_v

    def test_immutable(self):
        state = RotateFlipState()
        state.rotate_right()

        assert state.rotation_deg == 0
        assert state.is_identity

    def test_full_turn_is_identity(self):
        state = RotateFlipState()
        for _ in range(4):
            state = state.rotate_left()

        assert state.is_identity

    def test_to_params(self):
        params = RotateFlipState(rotation_deg=180, flip_v=True).to_params()

        assert params.rotation_deg == 180
        assert params.flip_v and not params.flip_h


class TestCropState:
    """Test crop viewport value object"""

    def test_zoom_clamped(self):
        assert CropState(zoom=0.2).zoom == 1.0
        assert CropState().with_zoom(10).zoom == 3.0
        assert CropState().with_zoom(2.5).zoom == 2.5

    def test_rotation_normalized(self):
        assert CropState().rotate_left().rotation_deg == 270
        assert CropState(rotation_deg=-450).rotation_deg == 270
        assert CropState().with_rotation(360).rotation_deg == 0

    def test_presets(self):
        assert aspect_for_preset("Free") is None
        assert aspect_for_preset("4:3") == pytest.approx(4 / 3)
        assert CropState().with_aspect_preset("1:1").aspect == 1.0

    def test_unknown_preset(self):
        with pytest.raises(InvalidParametersException):
            CropState().with_aspect_preset("5:4")

    def test_free_identity_selects_whole_image(self):
        state = CropState(aspect=None)

        assert state.crop_rect(1000, 500) == CropRect(x=0, y=0, width=1000, height=500)

    def test_default_aspect_is_widescreen(self):
        rect = CropState().crop_rect(1600, 1600)

        assert (rect.width, rect.height) == (1600, 900)

    def test_pan_moves_window(self):
        state = CropState(aspect=None).with_zoom(2).with_pan(-500, 0)

        rect = state.crop_rect(1000, 500)

        assert (rect.x, rect.width) == (500, 500)

    def test_to_params_carries_rotation(self):
        params = CropState(aspect=None, rotation_deg=90).to_params(800, 600)

        assert params.rotation_deg == 90
        assert (params.x, params.width) == (175, 450)


class TestPreviewSession:
    """Test preview recomputation and export"""

    @pytest.fixture
    def session(self, test_image):
        return PreviewSession(SourceImage.from_array(test_image, format="JPEG"), filename="photo.jpg")

    def test_initial_state(self, session):
        assert session.preview.shape == (480, 640, 3)
        assert session.mime_type == "image/jpeg"

    def test_update_rotate_flip_redraws(self, session):
        preview = session.update_rotate_flip(RotateFlipState().rotate_right())

        assert preview.shape == (640, 480, 3)
        assert session.rotate_flip_state.rotation_deg == 90

    def test_update_crop(self, session):
        rect = session.update_crop(CropState(aspect=None, zoom=2.0))

        assert rect == CropRect(x=160, y=120, width=320, height=240)
        assert session.crop == rect

    def test_export_rotate_flip(self, session):
        session.update_rotate_flip(RotateFlipState(rotation_deg=45))

        exported = session.export_rotate_flip()

        assert exported.filename == "edited-photo.jpg"
        assert exported.mime_type == "image/jpeg"
        assert Image.open(io.BytesIO(exported.data)).format == "JPEG"

    def test_export_crop(self, session):
        session.update_crop(CropState(aspect=1.0))

        exported = session.export_crop()

        assert exported.filename == "cropped-photo.jpg"
        assert (exported.width, exported.height) == (480, 480)

    def test_export_rotated_crop_is_viewport_size(self, session):
        session.update_crop(CropState(aspect=1.0, zoom=2.0, rotation_deg=45))

        exported = session.export_crop()

        assert (exported.width, exported.height) == (396, 396)

    def test_unsupported_mime_falls_back_to_png(self, test_image):
        session = PreviewSession(
            SourceImage.from_array(test_image), filename="anim.gif", mime_type="image/gif"
        )

        exported = session.export_rotate_flip()

        assert exported.mime_type == "image/png"
        assert Image.open(io.BytesIO(exported.data)).format == "PNG"

    def test_reset(self, session):
        session.update_rotate_flip(RotateFlipState(flip_h=True))
        session.update_crop(CropState(zoom=3))

        session.reset()

        assert session.rotate_flip_state.is_identity
        assert session.crop_state.zoom == 1.0

    def test_from_bytes(self, png_payload):
        session = PreviewSession.from_bytes(png_payload, filename="a.png")

        assert session.mime_type == "image/png"
        assert session.export_crop().mime_type == "image/png"

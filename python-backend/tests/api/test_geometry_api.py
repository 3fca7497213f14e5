"""
API Integration Tests for Geometry Preview Endpoints
"""


class TestGeometryAPI:
    """Integration tests for /api/geometry"""

    def test_resize_fit_width_only(self, client):
        response = client.post(
            "/api/geometry/resize-fit",
            json={"source_width": 1000, "source_height": 500, "width": 500},
        )

        assert response.status_code == 200
        data = response.json()
        assert (data["canvas_width"], data["canvas_height"]) == (500, 250)
        assert (data["offset_x"], data["offset_y"]) == (0, 0)

    def test_resize_fit_box(self, client):
        response = client.post(
            "/api/geometry/resize-fit",
            json={"source_width": 1000, "source_height": 500, "width": 400, "height": 400},
        )

        data = response.json()
        assert (data["canvas_width"], data["canvas_height"]) == (400, 400)
        assert (data["draw_width"], data["draw_height"]) == (400, 200)
        assert (data["offset_x"], data["offset_y"]) == (0, 100)

    def test_rotated_bounds(self, client):
        response = client.post(
            "/api/geometry/rotated-bounds",
            json={"source_width": 800, "source_height": 600, "rotation_deg": 45},
        )

        assert response.json() == {"width": 990, "height": 990}

    def test_crop_rectangle(self, client):
        response = client.post(
            "/api/geometry/crop-rectangle",
            json={"source_width": 1000, "source_height": 500, "zoom": 2},
        )

        assert response.status_code == 200
        assert response.json()["crop"] == {"x": 250, "y": 125, "width": 500, "height": 250}

    def test_invalid_body(self, client):
        response = client.post(
            "/api/geometry/rotated-bounds", json={"source_width": 0, "source_height": 600}
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidParameters"

"""
API Integration Tests for System Endpoints
"""


class TestSystemAPI:
    """Integration tests for root and /api/system"""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert data["endpoints"]["process"] == "/api/process"

    def test_health(self, client):
        response = client.get("/health")

        assert response.json()["services"] == {
            "transform_service": True,
            "background_service": True,
        }

    def test_system_health(self, client):
        response = client.get("/api/system/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_status(self, client):
        response = client.get("/api/system/status")

        assert response.status_code == 200
        data = response.json()
        assert data["uptime"] >= 0
        assert "png" in data["supported_formats"]
        assert "process_mb" in data["memory_usage"]

    def test_config(self, client_factory):
        client = client_factory(max_dimension=2048)

        data = client.get("/api/system/config").json()

        assert data["processing"]["max_dimension"] == 2048
        assert data["processing"]["default_format"] == "jpeg"

    def test_openapi_documents_error_body(self, client):
        schema = client.get("/openapi.json").json()

        assert "ErrorResponse" in schema["components"]["schemas"]
        responses = schema["paths"]["/api/process"]["post"]["responses"]
        assert "413" in responses

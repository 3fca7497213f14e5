"""
Pytest configuration for API integration tests
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="function")
def client_factory(fake_remover):
    """
    Build test clients with properly initialized app state.
    Each call resets the state, so tests can pick their own limits.
    """
    from config import ProcessingConfig, Settings
    from main import app
    from services.background_service import BackgroundRemovalService
    from services.transform_service import TransformService

    def _client(remover=None, **processing):
        settings = Settings(processing=ProcessingConfig(**processing))

        # Set in app state
        app.state.settings = settings
        app.state.transform_service = TransformService.from_config(settings.processing)
        app.state.background_service = BackgroundRemovalService(
            remover=remover or fake_remover,
            max_upload_bytes=settings.processing.max_upload_bytes,
            max_image_pixels=settings.processing.max_image_pixels,
        )

        # Create test client (no context manager, the state above replaces lifespan)
        return TestClient(app, raise_server_exceptions=False)

    return _client


@pytest.fixture(scope="function")
def client(client_factory):
    """Test client with default settings"""
    return client_factory()

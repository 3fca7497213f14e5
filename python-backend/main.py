"""
Image Utility Server - Main FastAPI Application
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Add parent directory to path
sys.path.append(str(Path(__file__).parent))

from api.exceptions import register_exception_handlers  # noqa: E402

# Import routers  # noqa: E402
from api.routers import background, geometry, process, system  # noqa: E402

# Import configuration  # noqa: E402
from config import get_settings  # noqa: E402
from core.background_removal import RembgRemover  # noqa: E402
from core.constants import SystemConstants  # noqa: E402
from core.enums import ErrorKind  # noqa: E402
from schemas import ErrorResponse  # noqa: E402

# Import services  # noqa: E402
from services.background_service import BackgroundRemovalService  # noqa: E402
from services.transform_service import TransformService  # noqa: E402

# Get configuration
settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.system.log_level),
    format=SystemConstants.LOG_FORMAT,
)
logger = logging.getLogger(__name__)

# Suppress watchfiles debug messages
logging.getLogger("watchfiles").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    # Startup
    logger.info("Starting Image Utility Server...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.system.debug}")

    processing = settings.processing

    # Services are stateless; one instance serves all requests
    app.state.settings = settings
    app.state.transform_service = TransformService.from_config(processing)
    app.state.background_service = BackgroundRemovalService(
        remover=RembgRemover(settings.background_removal.model_name),
        max_upload_bytes=processing.max_upload_bytes,
        max_image_pixels=processing.max_image_pixels,
    )
    app.state.debug = settings.system.debug

    logger.info(
        f"Upload limit {processing.max_upload_mb} MB, max dimension {processing.max_dimension} px"
    )

    yield

    # Shutdown
    logger.info("Server shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Image Utility Server",
    description="Resize, convert, crop, rotate/flip and background removal for uploaded images",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS for browser clients
if settings.api.cors_enabled:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Image-Width", "X-Image-Height"],
    )

# Register exception handlers
register_exception_handlers(app)

# Include routers
ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}
app.include_router(process.router, prefix="/api", tags=["Process"], responses=ERROR_RESPONSES)
app.include_router(
    geometry.router, prefix="/api/geometry", tags=["Geometry"], responses=ERROR_RESPONSES
)
app.include_router(
    background.router,
    prefix="/api/remove-background",
    tags=["Background"],
    responses=ERROR_RESPONSES,
)
app.include_router(system.router, prefix="/api/system", tags=["System"])


# Root endpoint
@app.get("/")
async def root():
    return {
        "name": "Image Utility Server",
        "status": "running",
        "version": "1.0.0",
        "endpoints": {
            "process": "/api/process",
            "crop": "/api/crop",
            "rotate_flip": "/api/rotate-flip",
            "remove_background": "/api/remove-background",
            "geometry": "/api/geometry",
            "system": "/api/system",
            "docs": "/docs",
        },
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "services": {
            "transform_service": getattr(app.state, "transform_service", None) is not None,
            "background_service": getattr(app.state, "background_service", None) is not None,
        },
    }


# Error handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "kind": ErrorKind.ENCODE_FAILED.value, "details": str(exc)},
    )


if __name__ == "__main__":
    reload_excludes = (
        ["*.log", "*.pyc", "__pycache__", ".git", ".venv", "venv"]
        if settings.system.debug
        else None
    )

    server_config = uvicorn.Config(
        "main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.system.debug,
        reload_excludes=reload_excludes,
        log_level=settings.system.log_level.lower(),
        loop="asyncio",
    )

    server = uvicorn.Server(server_config)

    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        logger.info("Server exiting...")

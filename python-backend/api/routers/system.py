"""
System API Router - Status and configuration
"""

import logging
import time
from datetime import datetime

import psutil
from fastapi import APIRouter, Depends

from api.dependencies import get_app_settings
from api.exceptions import safe_endpoint
from config import Settings
from core.enums import OutputFormat
from core.image.encoder import is_format_available
from schemas import SystemStatus

logger = logging.getLogger(__name__)

router = APIRouter()

# Track start time
START_TIME = time.time()


@router.get("/status")
@safe_endpoint
async def get_status() -> SystemStatus:
    """Get system status"""
    # Get memory usage
    process = psutil.Process()
    memory_info = process.memory_info()

    # Get system memory
    virtual_memory = psutil.virtual_memory()

    return SystemStatus(
        status="healthy",
        uptime=time.time() - START_TIME,
        memory_usage={
            "process_mb": memory_info.rss / 1024 / 1024,
            "system_percent": virtual_memory.percent,
            "available_mb": virtual_memory.available / 1024 / 1024,
        },
        supported_formats=[fmt.value for fmt in OutputFormat if is_format_available(fmt)],
    )


@router.get("/config")
@safe_endpoint
async def get_config(settings: Settings = Depends(get_app_settings)) -> dict:
    """Get current configuration"""
    return settings.to_dict()


@router.get("/health")
async def health_check() -> dict:
    """Simple health check"""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}

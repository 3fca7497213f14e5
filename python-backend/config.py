"""
Application configuration.

Settings are grouped into sections (system, api, processing,
background_removal) and read from environment variables once per process.
"""

import logging
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from core.constants import (
    APIConstants,
    BackgroundRemovalConstants,
    ImageConstants,
    SystemConstants,
)
from core.enums import OutputFormat

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


class SystemConfig(BaseModel):
    """Logging and debug settings"""

    log_level: str = SystemConstants.LOG_LEVEL_DEFAULT
    debug: bool = False

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class APIConfig(BaseModel):
    """HTTP server settings"""

    host: str = "0.0.0.0"
    port: int = Field(APIConstants.DEFAULT_PORT, ge=1, le=65535)
    cors_enabled: bool = True
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class ProcessingConfig(BaseModel):
    """Transform pipeline limits and defaults"""

    max_upload_mb: float = Field(APIConstants.MAX_UPLOAD_SIZE_MB, gt=0)
    max_dimension: int = Field(ImageConstants.MAX_IMAGE_DIMENSION, ge=1)
    max_image_pixels: Optional[int] = ImageConstants.MAX_IMAGE_PIXELS
    default_format: OutputFormat = OutputFormat.JPEG
    default_quality: int = Field(ImageConstants.DEFAULT_QUALITY, ge=1, le=100)

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)


class BackgroundRemovalConfig(BaseModel):
    """Background removal collaborator settings"""

    model_name: str = BackgroundRemovalConstants.DEFAULT_MODEL


class Settings(BaseModel):
    """Top-level settings container"""

    environment: str = "development"
    system: SystemConfig = Field(default_factory=SystemConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    background_removal: BackgroundRemovalConfig = Field(default_factory=BackgroundRemovalConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        max_pixels = os.getenv("MAX_IMAGE_PIXELS")
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            system=SystemConfig(
                log_level=os.getenv("LOG_LEVEL", SystemConstants.LOG_LEVEL_DEFAULT),
                debug=_env_bool("DEBUG", False),
            ),
            api=APIConfig(
                host=os.getenv("API_HOST", "0.0.0.0"),
                port=int(os.getenv("API_PORT", os.getenv("PORT", APIConstants.DEFAULT_PORT))),
                cors_enabled=_env_bool("CORS_ENABLED", True),
                cors_origins=_env_list("CORS_ORIGINS", ["*"]),
            ),
            processing=ProcessingConfig(
                max_upload_mb=float(os.getenv("MAX_UPLOAD_MB", APIConstants.MAX_UPLOAD_SIZE_MB)),
                max_dimension=int(
                    os.getenv("MAX_DIMENSION", ImageConstants.MAX_IMAGE_DIMENSION)
                ),
                max_image_pixels=(
                    int(max_pixels) if max_pixels else ImageConstants.MAX_IMAGE_PIXELS
                ),
            ),
            background_removal=BackgroundRemovalConfig(
                model_name=os.getenv("BG_REMOVAL_MODEL", BackgroundRemovalConstants.DEFAULT_MODEL)
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


@lru_cache()
def get_settings() -> Settings:
    """Get process-wide settings (read once)."""
    settings = Settings.from_env()
    logger.debug(f"Loaded settings for environment '{settings.environment}'")
    return settings

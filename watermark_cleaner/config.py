"""
Watermark Cleaner Configuration

Environment-based configuration using pydantic-settings.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "PDF Watermark Cleaner"
    debug: bool = False
    api_prefix: str = "/api"
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # File upload
    max_upload_size_mb: int = 50
    allowed_extensions: list[str] = [".pdf"]

    # Rendering
    detection_scale: float = 2.0  # Lower scale, previews only
    removal_scale: float = 4.0    # Output fidelity
    max_raster_bytes: int = 500 * 1024 * 1024

    # Detection
    min_text_length: int = 3
    preview_max_width: int = 1600  # 0 = keep full width

    # Removal
    removal_policy: str = "selective"  # selective, band
    render_alpha: bool = False  # Render RGBA; near-transparent pixels are never whitened

    # Jobs
    job_timeout_seconds: float = 300.0  # 0 = no deadline

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "WATERMARK_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

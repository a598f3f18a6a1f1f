"""
Pydantic Schemas

Request/Response models for the API.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .pipeline import WatermarkCandidate


class CamelModel(BaseModel):
    """Base for responses serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Watermark Schemas
# ============================================================================

class AnalyzeResponse(CamelModel):
    """Watermark candidates found in an uploaded PDF."""
    watermarks: list[WatermarkCandidate]
    page_count: int
    skipped_pages: list[int] = Field(
        default_factory=list,
        description="1-based pages that could not be analysed",
    )


class ErrorResponse(BaseModel):
    """Error body returned by the API."""
    detail: str


# ============================================================================
# Health/Status Schemas
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    backend: str
    backend_version: str
    timestamp: str
    uptime_seconds: float
    memory_peak_rss_bytes: int | None = None
    services: dict[str, str] = {}

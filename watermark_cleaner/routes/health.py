"""
Health Check Routes

System health and status endpoints.
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Annotated

import pymupdf as fitz
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .. import __version__
from ..pipeline.rasterizer import mupdf_lock
from ..schemas import HealthResponse
from ..services.processing import ProcessingService, get_processing_service

try:
    import resource
except ImportError:  # Not available on Windows
    resource = None

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

_started = time.monotonic()


def peak_rss_bytes() -> int | None:
    """Peak resident memory of this process."""
    if resource is None:
        return None
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports kilobytes, macOS bytes
    return rss if sys.platform == "darwin" else rss * 1024


def check_rasterizer() -> bool:
    """Render a tiny blank page to prove the PDF backend works."""
    with mupdf_lock:
        doc = fitz.open()
        try:
            page = doc.new_page(width=72, height=72)
            pix = page.get_pixmap(matrix=fitz.Matrix(0.1, 0.1))
            return pix.width > 0
        finally:
            doc.close()


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: Annotated[ProcessingService, Depends(get_processing_service)],
) -> HealthResponse:
    """
    Health check endpoint.

    Returns overall service health, rasterizer backend, uptime and memory usage.
    """
    services = {}

    try:
        services["rasterizer"] = "healthy" if check_rasterizer() else "unhealthy"
    except Exception as e:
        logger.error("Rasterizer health check failed: %s", type(e).__name__)
        services["rasterizer"] = "unhealthy"

    all_healthy = all(s == "healthy" for s in services.values())

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        version=__version__,
        backend=service.rasterizer.backend,
        backend_version=service.rasterizer.backend_version,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=round(time.monotonic() - _started, 3),
        memory_peak_rss_bytes=peak_rss_bytes(),
        services=services,
    )


@router.get("/health/live")
async def liveness():
    """
    Kubernetes liveness probe.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(
    service: Annotated[ProcessingService, Depends(get_processing_service)],
):
    """
    Kubernetes readiness probe.

    Returns 200 once the PDF backend can render, 503 otherwise.
    """
    try:
        if check_rasterizer():
            return {
                "status": "ready",
                "backend": service.rasterizer.backend,
                "backendVersion": service.rasterizer.backend_version,
            }
    except Exception:
        logger.error("Readiness check failed")
    return JSONResponse(status_code=503, content={"status": "not ready"})

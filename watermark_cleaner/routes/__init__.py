"""
API Routes

FastAPI routers for the watermark cleaner endpoints.
"""

from .health import router as health_router
from .watermark import router as watermark_router

__all__ = ["health_router", "watermark_router"]

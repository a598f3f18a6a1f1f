"""
Watermark Cleaner API

FastAPI application exposing PDF watermark analysis and removal.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from . import __version__
from .config import get_settings
from .routes import health_router, watermark_router

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting %s...", settings.app_name)
    logger.info(
        "Detection scale %.1fx, removal scale %.1fx, policy %s",
        settings.detection_scale,
        settings.removal_scale,
        settings.removal_policy,
    )

    yield

    logger.info("Shutting down %s...", settings.app_name)


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Remove header, footer and center watermarks from PDF documents",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "Content-Disposition",
        "X-Watermark-Fallback",
        "X-Watermark-Error",
        "X-Watermark-Failed-Page",
        "X-Page-Count",
    ],
)

# Include routers
app.include_router(health_router)
app.include_router(watermark_router, prefix=settings.api_prefix)

# Prometheus metrics endpoint
Instrumentator().instrument(app).expose(app, endpoint="/metrics")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


def run():
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "watermark_cleaner.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()

"""
Watermark Cleaner Pipeline

Rasterization, band selection, color matching, detection and removal.
"""

from .errors import (
    WatermarkError,
    LoadError,
    RenderError,
    InvalidSettings,
    EncodingError,
    ProcessingError,
    ProcessingTimeout,
)
from .models import (
    ColorSpec,
    RemovalPolicy,
    WatermarkCandidate,
    WatermarkLocation,
    WatermarkSettings,
    WatermarkType,
    parse_candidates,
    parse_settings,
)
from .rasterizer import PageRaster, PdfDocument, Rasterizer, open_document
from .regions import Band, PageBands, bands
from .color_matcher import matches, match_mask
from .detector import WatermarkDetector, DetectionResult
from .remover import WatermarkRemover, RemovalResult, RemovalJob, RemovalState
from .reconstruction import PdfBuilder

__all__ = [
    # Errors
    "WatermarkError",
    "LoadError",
    "RenderError",
    "InvalidSettings",
    "EncodingError",
    "ProcessingError",
    "ProcessingTimeout",
    # Models
    "ColorSpec",
    "RemovalPolicy",
    "WatermarkCandidate",
    "WatermarkLocation",
    "WatermarkSettings",
    "WatermarkType",
    "parse_candidates",
    "parse_settings",
    # Rasterization
    "PageRaster",
    "PdfDocument",
    "Rasterizer",
    "open_document",
    # Regions and colors
    "Band",
    "PageBands",
    "bands",
    "matches",
    "match_mask",
    # Detection and removal
    "WatermarkDetector",
    "DetectionResult",
    "WatermarkRemover",
    "RemovalResult",
    "RemovalJob",
    "RemovalState",
    "PdfBuilder",
]

"""
Watermark Cleaner Services

Job orchestration on top of the pipeline.
"""

from .processing import ProcessingService, RemovalOutcome, get_processing_service

__all__ = ["ProcessingService", "RemovalOutcome", "get_processing_service"]

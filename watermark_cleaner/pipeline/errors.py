"""
Pipeline Errors

Failure taxonomy shared by detection and removal.
"""

from typing import Optional


class WatermarkError(Exception):
    """Base class for all pipeline failures."""


class LoadError(WatermarkError):
    """The document cannot be parsed at all."""


class RenderError(WatermarkError):
    """A single page cannot be rasterized or its text extracted."""

    def __init__(self, message: str, page_index: Optional[int] = None):
        super().__init__(message)
        self.page_index = page_index


class InvalidSettings(WatermarkError, ValueError):
    """Watermark settings are out of range."""


class EncodingError(WatermarkError):
    """A raster could not be encoded or embedded into the output PDF."""


class ProcessingError(WatermarkError):
    """
    A removal job failed.

    Carries the zero-based page index and the job state at the time of failure.
    """

    def __init__(
        self,
        message: str,
        page_index: Optional[int] = None,
        state: Optional[str] = None,
    ):
        super().__init__(message)
        self.page_index = page_index
        self.state = state


class ProcessingTimeout(ProcessingError):
    """The job ran past its deadline."""

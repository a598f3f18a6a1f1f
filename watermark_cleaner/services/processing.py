"""
Processing Service

Runs analysis and removal jobs with the configured scales, limits and
policy, records metrics, and applies the removal fallback.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from ..config import Settings, get_settings
from ..metrics import record_candidates, record_fallback, record_job, record_skipped_pages
from ..pipeline import (
    DetectionResult,
    InvalidSettings,
    ProcessingError,
    Rasterizer,
    RemovalPolicy,
    RemovalResult,
    WatermarkCandidate,
    WatermarkDetector,
    WatermarkRemover,
    parse_settings,
)
from ..pipeline.deadline import Deadline

logger = logging.getLogger(__name__)


@dataclass
class RemovalOutcome:
    """
    What a removal request delivers.

    ``fallback`` is True when removal failed and ``pdf_bytes`` are the
    unmodified original; ``error`` then holds the reason.
    """
    pdf_bytes: bytes
    fallback: bool = False
    error: Optional[str] = None
    failed_page: Optional[int] = None  # 1-based
    result: Optional[RemovalResult] = None


class ProcessingService:
    """
    Analysis and removal with service-wide configuration.

    Holds no per-job state; every call opens and closes its own document.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        rasterizer: Optional[Rasterizer] = None,
    ):
        self.config = config or get_settings()
        self.rasterizer = rasterizer or Rasterizer(max_raster_bytes=self.config.max_raster_bytes)

    def _deadline(self) -> Deadline:
        return Deadline(self.config.job_timeout_seconds)

    def detector(self) -> WatermarkDetector:
        return WatermarkDetector(
            rasterizer=self.rasterizer,
            scale=self.config.detection_scale,
            min_text_length=self.config.min_text_length,
            preview_max_width=self.config.preview_max_width,
        )

    def remover(self, policy: Optional[str | RemovalPolicy] = None) -> WatermarkRemover:
        try:
            policy = RemovalPolicy(policy or self.config.removal_policy)
        except ValueError as e:
            raise InvalidSettings(f"Unknown removal policy: {policy}") from e

        return WatermarkRemover(
            rasterizer=self.rasterizer,
            scale=self.config.removal_scale,
            policy=policy,
            alpha=self.config.render_alpha,
        )

    def analyze(
        self,
        data: bytes,
        settings: Any = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> DetectionResult:
        """
        Detect watermark candidates.

        Raises:
            InvalidSettings, LoadError, ProcessingTimeout
        """
        settings = parse_settings(settings)
        started = time.monotonic()

        try:
            result = self.detector().detect(
                data,
                settings,
                deadline=self._deadline(),
                progress_callback=progress_callback,
            )
        except Exception:
            record_job("analyze", "failed", time.monotonic() - started)
            raise

        record_job("analyze", "completed", time.monotonic() - started, pages=result.analyzed_pages)
        record_skipped_pages(len(result.skipped_pages))
        record_candidates(len(result.candidates))
        return result

    def remove(
        self,
        data: bytes,
        settings: Any = None,
        candidates: Optional[Iterable[WatermarkCandidate]] = None,
        selected_indices: Optional[Iterable[int]] = None,
        policy: Optional[str | RemovalPolicy] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> RemovalResult:
        """
        Remove watermarks, raising on failure.

        Raises:
            InvalidSettings: before any rendering
            ProcessingError: if any page fails
        """
        settings = parse_settings(settings)
        remover = self.remover(policy)
        started = time.monotonic()

        try:
            result = remover.remove(
                data,
                settings,
                candidates=candidates,
                selected_indices=selected_indices,
                deadline=self._deadline(),
                progress_callback=progress_callback,
            )
        except InvalidSettings:
            raise
        except Exception:
            record_job("remove", "failed", time.monotonic() - started)
            raise

        record_job("remove", "completed", time.monotonic() - started, pages=result.page_count)
        return result

    def remove_with_fallback(
        self,
        data: bytes,
        settings: Any = None,
        candidates: Optional[Iterable[WatermarkCandidate]] = None,
        selected_indices: Optional[Iterable[int]] = None,
        policy: Optional[str | RemovalPolicy] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> RemovalOutcome:
        """
        Remove watermarks, returning the original document if removal fails.

        Invalid settings are still raised: they are the caller's error and
        nothing has been rendered yet.
        """
        try:
            result = self.remove(
                data,
                settings,
                candidates=candidates,
                selected_indices=selected_indices,
                policy=policy,
                progress_callback=progress_callback,
            )
        except InvalidSettings:
            raise
        except ProcessingError as e:
            cause = e.__cause__ or e
            reason = type(cause).__name__
            logger.warning(f"Removal failed ({reason}), returning original document: {e}")
            record_fallback(reason)
            return RemovalOutcome(
                pdf_bytes=data,
                fallback=True,
                error=str(e),
                failed_page=e.page_index + 1 if e.page_index is not None else None,
            )

        return RemovalOutcome(pdf_bytes=result.pdf_bytes, result=result)


# Singleton instance
_processing_service: ProcessingService | None = None


def get_processing_service() -> ProcessingService:
    """Get or create processing service singleton."""
    global _processing_service
    if _processing_service is None:
        _processing_service = ProcessingService()
    return _processing_service

"""
Watermark Remover

Whitens watermark pixels page by page and rebuilds the PDF from the cleaned
rasters.

For every page:
1. The center band is always cleaned of watermark-colored pixels
2. Each selected header/footer band is cleaned according to the policy:
   - SELECTIVE: only pixels matching a watermark color become white
   - BAND: the whole band becomes white

Removal is all-or-nothing: any page failure aborts the job with a
ProcessingError so callers never receive a partially cleaned document.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional, Union

import numpy as np

from .color_matcher import TRANSPARENT_ALPHA, match_mask
from .deadline import Deadline
from .errors import InvalidSettings, ProcessingError
from .models import (
    RemovalPolicy,
    WatermarkCandidate,
    WatermarkLocation,
    WatermarkSettings,
    parse_settings,
)
from .rasterizer import PageRaster, Rasterizer, open_document
from .reconstruction import PdfBuilder
from .regions import bands

logger = logging.getLogger(__name__)


class RemovalState(str, Enum):
    """States of a removal job."""
    IDLE = "idle"
    RASTERIZING = "rasterizing"
    MASKING = "masking"
    EMBEDDING = "embedding"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


# Allowed transitions; FAILED is reachable from any non-terminal state
_TRANSITIONS = {
    RemovalState.IDLE: {RemovalState.RASTERIZING},
    RemovalState.RASTERIZING: {RemovalState.MASKING},
    RemovalState.MASKING: {RemovalState.EMBEDDING},
    RemovalState.EMBEDDING: {RemovalState.RASTERIZING, RemovalState.FINALIZING},
    RemovalState.FINALIZING: {RemovalState.DONE},
    RemovalState.DONE: set(),
    RemovalState.FAILED: set(),
}


class RemovalJob:
    """Tracks the state of one removal run."""

    def __init__(self):
        self.state = RemovalState.IDLE
        self.page_index: Optional[int] = None
        self.history: list[tuple[RemovalState, Optional[int]]] = [(RemovalState.IDLE, None)]

    @property
    def finished(self) -> bool:
        return self.state in (RemovalState.DONE, RemovalState.FAILED)

    def transition(self, state: RemovalState, page_index: Optional[int] = None):
        if state != RemovalState.FAILED and state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid removal transition {self.state.value} -> {state.value}")
        if self.finished:
            raise RuntimeError(f"Removal job already {self.state.value}")

        self.state = state
        if page_index is not None:
            self.page_index = page_index
        self.history.append((state, page_index))
        logger.debug(
            f"Removal job -> {state.value}"
            + (f" (page {page_index + 1})" if page_index is not None else "")
        )

    def fail(self, error: Exception) -> ProcessingError:
        """Move to FAILED and wrap ``error`` with the failing state and page."""
        failed_state = self.state
        if not self.finished:
            self.transition(RemovalState.FAILED)

        if isinstance(error, ProcessingError):
            if error.page_index is None:
                error.page_index = self.page_index
            if error.state is None:
                error.state = failed_state.value
            return error

        where = f" on page {self.page_index + 1}" if self.page_index is not None else ""
        wrapped = ProcessingError(
            f"Removal failed while {failed_state.value}{where}: {error}",
            page_index=self.page_index,
            state=failed_state.value,
        )
        wrapped.__cause__ = error
        return wrapped


@dataclass
class RemovalResult:
    """Result of removing watermarks from a document."""
    pdf_bytes: bytes
    page_count: int
    policy: RemovalPolicy
    locations: list[WatermarkLocation] = field(default_factory=list)
    pixels_whitened: int = 0


def select_candidates(
    candidates: Iterable[WatermarkCandidate],
    indices: Optional[Iterable[int]] = None,
) -> list[WatermarkCandidate]:
    """
    Resolve the user's selection.

    With ``indices`` the listed candidates are taken regardless of their
    ``selected`` flag; otherwise candidates flagged ``selected`` are taken.

    Raises:
        InvalidSettings: if an index is out of range
    """
    candidates = list(candidates)
    if indices is None:
        return [c for c in candidates if c.selected]

    chosen = []
    for index in sorted(set(indices)):
        if index < 0 or index >= len(candidates):
            raise InvalidSettings(
                f"Watermark index {index} out of range (0..{len(candidates) - 1})"
            )
        chosen.append(candidates[index])
    return chosen


def removal_locations(selection: Iterable[WatermarkCandidate]) -> list[WatermarkLocation]:
    """Header/footer locations to clean, in selection order, without repeats."""
    locations = []
    for candidate in selection:
        location = WatermarkLocation(candidate.location)
        if location == WatermarkLocation.CENTER or location in locations:
            continue
        locations.append(location)
    return locations


def _whiten(rows: np.ndarray, mask: np.ndarray) -> int:
    """Set masked pixels to opaque white; returns how many changed."""
    changed = mask & np.any(rows != 255, axis=2)
    rows[changed] = 255
    return int(np.count_nonzero(changed))


def whiten_matching(
    rows: np.ndarray,
    settings: WatermarkSettings,
    alpha_threshold: int = TRANSPARENT_ALPHA,
) -> int:
    """Whiten the watermark-colored pixels of a band in place."""
    if rows.size == 0:
        return 0
    return _whiten(rows, match_mask(rows, settings, alpha_threshold))


def whiten_band(rows: np.ndarray) -> int:
    """Whiten every pixel of a band in place."""
    if rows.size == 0:
        return 0
    return _whiten(rows, np.ones(rows.shape[:2], dtype=bool))


class WatermarkRemover:
    """
    Removes watermarks from every page of a PDF.

    The rasterizer is injected; the scale trades output fidelity for time
    and memory.
    """

    def __init__(
        self,
        rasterizer: Optional[Rasterizer] = None,
        scale: float = 4.0,
        policy: Union[RemovalPolicy, str] = RemovalPolicy.SELECTIVE,
        alpha: bool = False,
    ):
        self.rasterizer = rasterizer or Rasterizer()
        self.scale = scale
        self.policy = RemovalPolicy(policy)
        self.alpha = alpha

    def clean_raster(
        self,
        raster: PageRaster,
        settings: WatermarkSettings,
        locations: Iterable[WatermarkLocation] = (),
    ) -> int:
        """
        Whiten watermarks on one rendered page in place.

        Returns:
            Number of pixels changed
        """
        page_bands = bands(
            raster.height,
            settings.header_height_percent,
            settings.footer_height_percent,
        )

        changed = whiten_matching(raster.rows(page_bands.center), settings)

        for location in locations:
            rows = raster.rows(page_bands.get(location))
            if self.policy == RemovalPolicy.BAND:
                changed += whiten_band(rows)
            else:
                changed += whiten_matching(rows, settings)

        return changed

    def remove(
        self,
        data: bytes,
        settings: Union[None, dict, str, WatermarkSettings] = None,
        candidates: Optional[Iterable[WatermarkCandidate]] = None,
        selected_indices: Optional[Iterable[int]] = None,
        deadline: Optional[Deadline] = None,
        job: Optional[RemovalJob] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> RemovalResult:
        """
        Remove watermarks and rebuild the document.

        Args:
            data: Source PDF bytes
            settings: Job settings (validated before any page is rendered)
            candidates: Candidates from the detector, with ``selected`` flags
            selected_indices: Optional explicit selection into ``candidates``
            deadline: Optional job deadline, checked before each page
            job: Optional state tracker (a new one is created if omitted)
            progress_callback: Optional callback(current, total, message)

        Returns:
            RemovalResult with the new PDF bytes

        Raises:
            InvalidSettings: before any rendering, if settings or selection are invalid
            ProcessingError: if any page fails; no partial output is returned
        """
        settings = parse_settings(settings)
        selection = select_candidates(candidates or [], selected_indices)
        locations = removal_locations(selection)
        deadline = deadline or Deadline.none()
        job = job or RemovalJob()

        logger.info(
            f"Removing watermarks (policy={self.policy.value}, scale={self.scale}, "
            f"bands=center{''.join('+' + l.value for l in locations)})"
        )

        pixels_whitened = 0
        try:
            with open_document(data) as document, PdfBuilder() as builder:
                total = document.page_count

                for index in range(total):
                    deadline.check(page_index=index, state=job.state.value)

                    if progress_callback:
                        progress_callback(index + 1, total, f"Cleaning page {index + 1}")

                    job.transition(RemovalState.RASTERIZING, index)
                    page = document.page(index)
                    width, height = self.rasterizer.page_size(page)
                    raster = self.rasterizer.rasterize(page, self.scale, alpha=self.alpha)

                    job.transition(RemovalState.MASKING, index)
                    pixels_whitened += self.clean_raster(raster, settings, locations)

                    job.transition(RemovalState.EMBEDDING, index)
                    builder.add_page(raster, width, height)
                    del raster

                job.transition(RemovalState.FINALIZING)
                pdf_bytes = builder.to_bytes()
                page_count = builder.page_count

        except Exception as e:
            error = job.fail(e)
            logger.error(f"Watermark removal failed: {error}")
            if error is e:
                raise
            raise error from e

        job.transition(RemovalState.DONE)
        logger.info(f"Removed watermarks from {page_count} pages ({pixels_whitened} pixels whitened)")

        return RemovalResult(
            pdf_bytes=pdf_bytes,
            page_count=page_count,
            policy=self.policy,
            locations=locations,
            pixels_whitened=pixels_whitened,
        )

"""
Watermark Detector

Finds watermark candidates in a PDF:
- Header and footer bands are always proposed as image watermarks
- Center-band text watermarks are found by keyword matching on the text layer

Candidates are folded across pages by (type, location), so a watermark that
repeats on every page is reported once with the list of pages it appears on.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

import pymupdf as fitz

from .deadline import Deadline
from .errors import EncodingError, RenderError
from .models import (
    WatermarkCandidate,
    WatermarkLocation,
    WatermarkSettings,
    WatermarkType,
    parse_settings,
)
from .rasterizer import PageRaster, PdfDocument, Rasterizer, open_document
from .reconstruction import encode_png, to_data_uri
from .regions import Band, bands

logger = logging.getLogger(__name__)

# Common confidentiality markers, English and Chinese
WATERMARK_KEYWORDS = (
    "confidential",
    "机密",
    "内部",
    "internal",
    "草稿",
    "draft",
    "版权",
    "copyright",
    "禁止",
    "prohibited",
    "保密",
    "secret",
)


def is_watermark_text(
    text: str,
    min_length: int = 3,
    keywords: Iterable[str] = WATERMARK_KEYWORDS,
) -> bool:
    """True if ``text`` is longer than ``min_length`` and contains a keyword."""
    if len(text) <= min_length:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


@dataclass
class DetectionResult:
    """Result of analysing a whole document."""
    candidates: list[WatermarkCandidate]
    page_count: int
    skipped_pages: list[int] = field(default_factory=list)  # 1-based

    @property
    def analyzed_pages(self) -> int:
        return self.page_count - len(self.skipped_pages)


def fold_candidates(
    accumulated: dict[tuple, WatermarkCandidate],
    page_candidates: list[WatermarkCandidate],
    page_number: int,
):
    """
    Merge one page's candidates into the document-wide accumulator.

    The first occurrence of a (type, location) keeps its preview and content;
    later pages only add their page number.
    """
    for candidate in page_candidates:
        existing = accumulated.get(candidate.key)
        if existing is None:
            candidate.pages = [page_number]
            accumulated[candidate.key] = candidate
        elif page_number not in existing.pages:
            existing.pages.append(page_number)


class WatermarkDetector:
    """
    Detects header, footer and center watermarks page by page.

    Pages that cannot be rendered, read or previewed are skipped; one bad page never
    fails the whole analysis.
    """

    def __init__(
        self,
        rasterizer: Optional[Rasterizer] = None,
        scale: float = 2.0,
        min_text_length: int = 3,
        preview_max_width: int = 0,
        keywords: Iterable[str] = WATERMARK_KEYWORDS,
    ):
        self.rasterizer = rasterizer or Rasterizer()
        self.scale = scale
        self.min_text_length = min_text_length
        self.preview_max_width = preview_max_width
        self.keywords = tuple(k.lower() for k in keywords)

    def _preview(self, raster: PageRaster, band: Band) -> Optional[str]:
        """Encode a band of the page as a PNG data URI."""
        if band.empty:
            return None

        return to_data_uri(encode_png(raster.rows(band), max_width=self.preview_max_width))

    def find_watermark_text(self, runs: Iterable[str]) -> list[str]:
        """Distinct keyword-matching runs, in first-seen order."""
        found = []
        for run in runs:
            if run not in found and is_watermark_text(run, self.min_text_length, self.keywords):
                found.append(run)
        return found

    def analyze_page(
        self, page: fitz.Page, settings: WatermarkSettings
    ) -> list[WatermarkCandidate]:
        """
        Detect candidates on a single page.

        Raises:
            RenderError: if the page cannot be rendered or its text read
            EncodingError: if a band preview cannot be encoded
        """
        raster = self.rasterizer.rasterize(page, self.scale)
        page_bands = bands(
            raster.height,
            settings.header_height_percent,
            settings.footer_height_percent,
        )

        # Header and footer are policy regions, proposed on every page
        candidates = [
            WatermarkCandidate(
                type=WatermarkType.IMAGE,
                location=WatermarkLocation.HEADER,
                preview_image=self._preview(raster, page_bands.header),
            ),
            WatermarkCandidate(
                type=WatermarkType.IMAGE,
                location=WatermarkLocation.FOOTER,
                preview_image=self._preview(raster, page_bands.footer),
            ),
        ]

        texts = self.find_watermark_text(self.rasterizer.text_runs(page))
        if texts:
            logger.debug(f"Page {raster.page_index + 1}: watermark text {texts}")
            candidates.append(
                WatermarkCandidate(
                    type=WatermarkType.TEXT,
                    location=WatermarkLocation.CENTER,
                    content=", ".join(texts),
                    preview_image=self._preview(raster, page_bands.center),
                )
            )

        return candidates

    def detect(
        self,
        source: Union[bytes, PdfDocument],
        settings: Union[None, dict, str, WatermarkSettings] = None,
        deadline: Optional[Deadline] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> DetectionResult:
        """
        Analyse every page of a document.

        Args:
            source: PDF bytes or an already opened document
            settings: Job settings (validated before any page is rendered)
            deadline: Optional job deadline, checked before each page
            progress_callback: Optional callback(current, total, message)

        Returns:
            DetectionResult with candidates in first-seen order

        Raises:
            InvalidSettings: if settings are out of range
            LoadError: if the document cannot be opened
            ProcessingTimeout: if the deadline passes
        """
        settings = parse_settings(settings)
        deadline = deadline or Deadline.none()

        if isinstance(source, PdfDocument):
            return self._detect_document(source, settings, deadline, progress_callback)

        with open_document(source) as document:
            return self._detect_document(document, settings, deadline, progress_callback)

    def _detect_document(
        self,
        document: PdfDocument,
        settings: WatermarkSettings,
        deadline: Deadline,
        progress_callback: Optional[Callable[[int, int, str], None]],
    ) -> DetectionResult:
        accumulated: dict[tuple, WatermarkCandidate] = {}
        skipped = []
        total = document.page_count

        logger.info(f"Analyzing {total} pages at {self.scale}x")

        for index in range(total):
            deadline.check(page_index=index)
            page_number = index + 1

            if progress_callback:
                progress_callback(page_number, total, f"Analyzing page {page_number}")

            try:
                page_candidates = self.analyze_page(document.page(index), settings)
            except (RenderError, EncodingError) as e:
                logger.warning(f"Skipping page {page_number}: {e}")
                skipped.append(page_number)
                continue

            fold_candidates(accumulated, page_candidates, page_number)

        candidates = list(accumulated.values())
        logger.info(
            f"Found {len(candidates)} watermark candidates on {total - len(skipped)} pages"
            + (f", skipped {len(skipped)}" if skipped else "")
        )

        return DetectionResult(candidates=candidates, page_count=total, skipped_pages=skipped)

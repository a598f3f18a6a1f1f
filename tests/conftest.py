"""Shared fixtures: synthetic PDFs with colored header/footer watermarks."""

import pymupdf as fitz
import pytest

from watermark_cleaner.config import Settings
from watermark_cleaner.pipeline import Rasterizer, RenderError, WatermarkSettings
from watermark_cleaner.services.processing import ProcessingService

PAGE_WIDTH = 200
PAGE_HEIGHT = 300

COLOR_1 = (221, 228, 250)  # light blue
COLOR_2 = (211, 211, 211)  # light gray


def _rgb(color):
    return tuple(c / 255 for c in color)


def make_pdf(page_texts, header_color=COLOR_1, footer_color=COLOR_2, center_stamp=None):
    """
    Build a PDF with one page per entry in ``page_texts``.

    Every page gets a filled rectangle in the header (top 9%) and footer
    (bottom 9%) in watermark colors, black body text, and optionally a
    light gray stamp in the middle of the page.
    """
    doc = fitz.open()
    for texts in page_texts:
        page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        page.draw_rect(
            fitz.Rect(10, 5, PAGE_WIDTH - 10, 22),
            color=None,
            fill=_rgb(header_color),
        )
        page.draw_rect(
            fitz.Rect(10, PAGE_HEIGHT - 22, PAGE_WIDTH - 10, PAGE_HEIGHT - 5),
            color=None,
            fill=_rgb(footer_color),
        )
        if center_stamp:
            page.draw_rect(fitz.Rect(60, 180, 140, 220), color=None, fill=_rgb(center_stamp))
        y = 80
        for text in texts:
            page.insert_text((20, y), text, fontsize=14, color=(0, 0, 0))
            y += 30
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def three_page_pdf():
    """Three pages; only page 2 carries a CONFIDENTIAL marker."""
    return make_pdf([
        ["Quarterly report"],
        ["CONFIDENTIAL", "Quarterly report"],
        ["Appendix"],
    ])


@pytest.fixture
def stamped_pdf():
    """One page with a light gray stamp in the center band."""
    return make_pdf([["Body text"]], center_stamp=COLOR_2)


@pytest.fixture
def default_settings():
    return WatermarkSettings(
        header_height_percent=9,
        footer_height_percent=9,
    )


@pytest.fixture
def app_config():
    return Settings(
        detection_scale=1.0,
        removal_scale=1.0,
        preview_max_width=0,
        job_timeout_seconds=0,
    )


@pytest.fixture
def service(app_config):
    return ProcessingService(app_config)


class FlakyRasterizer(Rasterizer):
    """Rasterizer that fails on chosen pages and counts its calls."""

    def __init__(self, fail_pages=(), fail_text_pages=()):
        super().__init__()
        self.fail_pages = set(fail_pages)
        self.fail_text_pages = set(fail_text_pages)
        self.calls = 0

    def rasterize(self, page, scale, alpha=False):
        self.calls += 1
        if page.number in self.fail_pages:
            raise RenderError(f"Broken page {page.number + 1}", page_index=page.number)
        return super().rasterize(page, scale, alpha=alpha)

    def text_runs(self, page):
        if page.number in self.fail_text_pages:
            raise RenderError(f"Broken text on page {page.number + 1}", page_index=page.number)
        return super().text_runs(page)

"""
Rasterizer

Loads PDF documents and renders their pages to pixel buffers with PyMuPDF.

The Rasterizer is passed into the detector and remover rather than living as
module state, so tests and alternative backends can substitute their own.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import pymupdf as fitz
import numpy as np

from .errors import LoadError, RenderError
from .regions import Band

logger = logging.getLogger(__name__)

DEFAULT_MAX_RASTER_BYTES = 500 * 1024 * 1024

# MuPDF keeps a global context that is not thread-safe; every call into it
# from request threads goes through this lock
mupdf_lock = threading.RLock()


@dataclass
class PageRaster:
    """
    A rendered page.

    ``pixels`` is a row-major H x W x C uint8 array (C = 3 for RGB, 4 for RGBA)
    owned by whoever rendered it. Bands are handed out as views, not copies.
    """
    pixels: np.ndarray
    page_index: int = 0
    scale: float = 1.0

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def channels(self) -> int:
        return self.pixels.shape[2]

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    def rows(self, band: Band) -> np.ndarray:
        """Writable view of the rows in ``band``."""
        return self.pixels[band.as_slice()]


class PdfDocument:
    """Read-only handle on a source PDF, owned by one job."""

    def __init__(self, doc: fitz.Document):
        self._doc = doc

    @classmethod
    def from_bytes(cls, data: bytes) -> "PdfDocument":
        """
        Parse PDF bytes.

        Raises:
            LoadError: if the bytes are not a readable, unencrypted PDF
        """
        if not data:
            raise LoadError("Empty document")

        try:
            with mupdf_lock:
                doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise LoadError(f"Could not open PDF: {e}") from e

        if doc.needs_pass:
            doc.close()
            raise LoadError("PDF is password protected")

        if doc.page_count == 0:
            doc.close()
            raise LoadError("PDF has no pages")

        return cls(doc)

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def page(self, index: int) -> fitz.Page:
        """
        Load a page by zero-based index.

        Raises:
            RenderError: if the page object is broken
        """
        try:
            with mupdf_lock:
                return self._doc.load_page(index)
        except Exception as e:
            raise RenderError(f"Could not load page {index + 1}: {e}", page_index=index) from e

    def close(self):
        if not self._doc.is_closed:
            with mupdf_lock:
                self._doc.close()

    def __enter__(self) -> "PdfDocument":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


@contextmanager
def open_document(data: bytes) -> Iterator[PdfDocument]:
    """Open a PDF for the duration of a job and always close it."""
    document = PdfDocument.from_bytes(data)
    try:
        yield document
    finally:
        document.close()


class Rasterizer:
    """
    Renders PDF pages to RGB(A) numpy arrays.

    Rejects any render whose buffer would exceed ``max_raster_bytes`` before
    allocating it.
    """

    backend = "pymupdf"

    def __init__(self, max_raster_bytes: int = DEFAULT_MAX_RASTER_BYTES):
        self.max_raster_bytes = max_raster_bytes

    @property
    def backend_version(self) -> str:
        return fitz.VersionBind

    def page_size(self, page: fitz.Page) -> tuple[float, float]:
        """Page width and height in PDF points, rotation applied."""
        with mupdf_lock:
            rect = page.rect
        return rect.width, rect.height

    def raster_size(self, page: fitz.Page, scale: float) -> tuple[int, int]:
        """Pixel dimensions ``rasterize`` would produce at ``scale``."""
        with mupdf_lock:
            irect = (page.rect * fitz.Matrix(scale, scale)).irect
        return irect.width, irect.height

    def rasterize(self, page: fitz.Page, scale: float, alpha: bool = False) -> PageRaster:
        """
        Render a page.

        Args:
            page: Source page (not modified)
            scale: Zoom factor, 1.0 = 72 dpi
            alpha: Render with a transparency channel (RGBA) instead of on white

        Returns:
            PageRaster holding a new buffer

        Raises:
            RenderError: if the page cannot be rendered or is too large
        """
        page_index = page.number if page.number is not None else 0

        if scale <= 0:
            raise RenderError(f"Scale must be positive, got {scale}", page_index=page_index)

        width, height = self.raster_size(page, scale)
        channels = 4 if alpha else 3
        required = width * height * channels
        if required > self.max_raster_bytes:
            raise RenderError(
                f"Page {page_index + 1} at scale {scale} needs {required} bytes "
                f"({width}x{height}x{channels}), limit is {self.max_raster_bytes}",
                page_index=page_index,
            )

        try:
            with mupdf_lock:
                pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=alpha)
            pixels = np.frombuffer(pix.samples, dtype=np.uint8).reshape(
                pix.height, pix.width, pix.n
            ).copy()
        except Exception as e:
            raise RenderError(
                f"Could not render page {page_index + 1}: {e}", page_index=page_index
            ) from e

        logger.debug(f"Rendered page {page_index + 1} at {scale}x: {pixels.shape[1]}x{pixels.shape[0]}")

        return PageRaster(pixels=pixels, page_index=page_index, scale=scale)

    def text_runs(self, page: fitz.Page) -> list[str]:
        """
        Extract the page's text spans in reading order.

        Raises:
            RenderError: if the text layer cannot be decoded
        """
        page_index = page.number if page.number is not None else 0

        try:
            with mupdf_lock:
                content = page.get_text("dict")
        except Exception as e:
            raise RenderError(
                f"Could not extract text from page {page_index + 1}: {e}",
                page_index=page_index,
            ) from e

        runs = []
        for block in content.get("blocks", []):
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if text:
                        runs.append(text)
        return runs

"""
PDF Reconstruction

Encodes cleaned page rasters as PNG and assembles them into a new PDF,
one full-page image per page.
"""

import base64
import io
import logging

import pymupdf as fitz
import numpy as np
from PIL import Image

from .errors import EncodingError
from .rasterizer import PageRaster, mupdf_lock

logger = logging.getLogger(__name__)


def encode_png(pixels: np.ndarray, compress_level: int = 6, max_width: int = 0) -> bytes:
    """
    Encode an RGB or RGBA array as PNG.

    Images wider than ``max_width`` (when set) are downscaled with LANCZOS,
    keeping the aspect ratio.

    Raises:
        EncodingError: if the array cannot be encoded
    """
    try:
        image = Image.fromarray(np.ascontiguousarray(pixels))
        if max_width and image.width > max_width:
            height = max(1, round(image.height * max_width / image.width))
            image = image.resize((max_width, height), Image.Resampling.LANCZOS)
        buf = io.BytesIO()
        image.save(buf, format="PNG", compress_level=compress_level)
        return buf.getvalue()
    except Exception as e:
        raise EncodingError(f"Could not encode image: {e}") from e


def to_data_uri(png: bytes) -> str:
    """Wrap PNG bytes as a data URI for JSON transport."""
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


class PdfBuilder:
    """
    Builds the output PDF page by page.

    Each page is sized in PDF points and fully covered by its raster, so the
    output has the same page count and page sizes as the source.
    """

    def __init__(self, compress_level: int = 6):
        self.compress_level = compress_level
        with mupdf_lock:
            self._doc = fitz.open()

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def add_page(self, raster: PageRaster, width: float, height: float):
        """
        Append a page showing ``raster`` at ``width`` x ``height`` points.

        Raises:
            EncodingError: if encoding or embedding fails
        """
        png = encode_png(raster.pixels, self.compress_level)

        try:
            with mupdf_lock:
                page = self._doc.new_page(width=width, height=height)
                page.insert_image(page.rect, stream=png, keep_proportion=False)
        except Exception as e:
            raise EncodingError(
                f"Could not embed page {raster.page_index + 1}: {e}"
            ) from e

        logger.debug(
            f"Embedded page {raster.page_index + 1} "
            f"({raster.width}x{raster.height}px -> {width:.1f}x{height:.1f}pt)"
        )

    def to_bytes(self) -> bytes:
        """
        Serialize the document.

        Raises:
            EncodingError: if the document cannot be written
        """
        try:
            with mupdf_lock:
                return self._doc.tobytes(garbage=3, deflate=True)
        except Exception as e:
            raise EncodingError(f"Could not write PDF: {e}") from e

    def close(self):
        if not self._doc.is_closed:
            with mupdf_lock:
                self._doc.close()

    def __enter__(self) -> "PdfBuilder":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

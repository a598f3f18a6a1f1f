"""
Region Selector

Splits a rasterized page into header, center and footer bands.
"""

import math
from dataclasses import dataclass
from typing import NamedTuple

from .errors import InvalidSettings
from .models import WatermarkLocation


class Band(NamedTuple):
    """Half-open pixel-row range [start, stop)."""
    start: int
    stop: int

    @property
    def height(self) -> int:
        return max(self.stop - self.start, 0)

    @property
    def empty(self) -> bool:
        return self.height == 0

    def as_slice(self) -> slice:
        return slice(self.start, self.stop)


@dataclass(frozen=True)
class PageBands:
    """The three bands of one page, top to bottom."""
    header: Band
    center: Band
    footer: Band

    def get(self, location: WatermarkLocation) -> Band:
        return getattr(self, WatermarkLocation(location).value)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def bands(height: int, header_pct: float, footer_pct: float) -> PageBands:
    """
    Compute the header, center and footer row ranges of a page.

    Args:
        height: Page height in pixels
        header_pct: Header height as a percentage of the page height
        footer_pct: Footer height as a percentage of the page height

    Returns:
        PageBands covering [0, height) with no gaps or overlaps
    """
    if height < 0:
        raise InvalidSettings(f"Page height must not be negative, got {height}")
    if header_pct < 0 or footer_pct < 0:
        raise InvalidSettings("Header and footer percentages must not be negative")
    if header_pct + footer_pct > 100:
        raise InvalidSettings(
            f"Header ({header_pct}%) and footer ({footer_pct}%) exceed the page height"
        )

    header_px = min(_round_half_up(height * header_pct / 100), height)
    footer_px = min(_round_half_up(height * footer_pct / 100), height - header_px)

    return PageBands(
        header=Band(0, header_px),
        center=Band(header_px, height - footer_px),
        footer=Band(height - footer_px, height),
    )

"""
Color Matcher

Decides whether pixels fall within tolerance of either watermark color.

A pixel matches a reference color when every channel's absolute difference
is within that color's tolerance (per-channel, not a combined distance).
"""

from typing import Sequence

import cv2
import numpy as np

from .models import ColorSpec, WatermarkSettings

# Pixels at or below this alpha are transparent background, never ink
TRANSPARENT_ALPHA = 10


def matches_color(pixel: Sequence[int], color: ColorSpec) -> bool:
    """Check one RGB(A) pixel against a single reference color."""
    r, g, b = int(pixel[0]), int(pixel[1]), int(pixel[2])
    return (
        abs(r - color.r) <= color.tolerance
        and abs(g - color.g) <= color.tolerance
        and abs(b - color.b) <= color.tolerance
    )


def matches(pixel: Sequence[int], settings: WatermarkSettings) -> bool:
    """
    Check one pixel against both watermark colors.

    Alpha, if present, is ignored here; see ``match_mask``.
    """
    return any(matches_color(pixel, color) for color in settings.colors)


def _color_bounds(color: ColorSpec) -> tuple[np.ndarray, np.ndarray]:
    ref = np.array(color.as_tuple(), dtype=np.int32)
    lower = np.clip(ref - color.tolerance, 0, 255).astype(np.uint8)
    upper = np.clip(ref + color.tolerance, 0, 255).astype(np.uint8)
    return lower, upper


def match_mask(
    pixels: np.ndarray,
    settings: WatermarkSettings,
    alpha_threshold: int = TRANSPARENT_ALPHA,
) -> np.ndarray:
    """
    Build a boolean mask of watermark-colored pixels.

    Args:
        pixels: H x W x 3 (RGB) or H x W x 4 (RGBA) uint8 array
        settings: Job settings holding the two reference colors
        alpha_threshold: RGBA pixels with alpha <= this never match

    Returns:
        H x W boolean array, True where the pixel is watermark ink
    """
    h, w = pixels.shape[:2]
    if h == 0 or w == 0:
        return np.zeros((h, w), dtype=bool)

    rgb = np.ascontiguousarray(pixels[:, :, :3])

    mask = np.zeros((h, w), dtype=np.uint8)
    for color in settings.colors:
        lower, upper = _color_bounds(color)
        mask = cv2.bitwise_or(mask, cv2.inRange(rgb, lower, upper))

    result = mask > 0

    if pixels.shape[2] == 4:
        result &= pixels[:, :, 3] > alpha_threshold

    return result

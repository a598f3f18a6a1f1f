"""
Pipeline Models

Per-job watermark settings and detected watermark candidates.
Both travel as camelCase JSON between the client and the pipeline.
"""
from __future__ import annotations

import json
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import InvalidSettings


class WatermarkType(str, Enum):
    """How a watermark was recognised."""
    IMAGE = "image"  # Policy band, removed by color
    TEXT = "text"    # Keyword match in page text


class WatermarkLocation(str, Enum):
    """Page band a watermark lives in."""
    HEADER = "header"
    FOOTER = "footer"
    CENTER = "center"


class RemovalPolicy(str, Enum):
    """How selected header/footer bands are whitened."""
    SELECTIVE = "selective"  # Only pixels matching a watermark color
    BAND = "band"            # The whole band, regardless of color


class ColorSpec(BaseModel):
    """A reference watermark color with its per-channel tolerance."""

    model_config = ConfigDict(frozen=True)

    r: int = Field(ge=0, le=255)
    g: int = Field(ge=0, le=255)
    b: int = Field(ge=0, le=255)
    tolerance: int = Field(default=30, ge=0, le=255)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)


# Light blue and light gray, the usual colors of scanned-document stamps
DEFAULT_COLOR_1 = ColorSpec(r=221, g=228, b=250, tolerance=30)
DEFAULT_COLOR_2 = ColorSpec(r=211, g=211, b=211, tolerance=30)


class WatermarkSettings(BaseModel):
    """
    Settings for a single analyze or remove job.

    Accepts both the current field names (``headerHeightPercent``) and the
    shorter ones older clients send (``headerHeight``, ``watermarkColor``).
    Missing fields fall back to the defaults.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    header_height_percent: float = Field(
        default=9,
        ge=0,
        le=50,
        validation_alias=AliasChoices(
            "headerHeightPercent", "headerHeight", "header_height_percent"
        ),
        serialization_alias="headerHeightPercent",
    )
    footer_height_percent: float = Field(
        default=9,
        ge=0,
        le=50,
        validation_alias=AliasChoices(
            "footerHeightPercent", "footerHeight", "footer_height_percent"
        ),
        serialization_alias="footerHeightPercent",
    )
    watermark_color1: ColorSpec = Field(
        default=DEFAULT_COLOR_1,
        validation_alias=AliasChoices(
            "watermarkColor1", "watermarkColor", "watermark_color1"
        ),
        serialization_alias="watermarkColor1",
    )
    watermark_color2: ColorSpec = Field(
        default=DEFAULT_COLOR_2,
        validation_alias=AliasChoices("watermarkColor2", "watermark_color2"),
        serialization_alias="watermarkColor2",
    )

    @property
    def colors(self) -> tuple[ColorSpec, ColorSpec]:
        return (self.watermark_color1, self.watermark_color2)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{loc}: {item.get('msg')}" if loc else str(item.get("msg")))
    return "; ".join(parts)


def parse_settings(
    raw: Union[None, str, bytes, dict[str, Any], WatermarkSettings],
) -> WatermarkSettings:
    """
    Build WatermarkSettings from a JSON string, a dict or an existing model.

    Raises:
        InvalidSettings: if the payload is not JSON or a value is out of range
    """
    if isinstance(raw, WatermarkSettings):
        return raw
    if raw is None or raw == "" or raw == b"":
        return WatermarkSettings()

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidSettings(f"Settings are not valid JSON: {e.msg}") from e

    if not isinstance(raw, dict):
        raise InvalidSettings("Settings must be a JSON object")

    try:
        return WatermarkSettings.model_validate(raw)
    except ValidationError as e:
        raise InvalidSettings(f"Invalid settings: {_format_validation_error(e)}") from e


class WatermarkCandidate(BaseModel):
    """
    A watermark signature found by the detector.

    Candidates are keyed by (type, location); ``pages`` lists every 1-based
    page the signature was seen on, in ascending order.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: WatermarkType
    location: WatermarkLocation
    content: Optional[str] = None
    pages: list[int] = Field(default_factory=list)
    preview_image: Optional[str] = None  # data:image/png;base64,...
    selected: bool = True

    @property
    def key(self) -> tuple[WatermarkType, WatermarkLocation]:
        return (self.type, self.location)


def parse_candidates(
    raw: Union[None, str, bytes, list[Any]],
) -> list[WatermarkCandidate]:
    """
    Build a candidate list from the JSON a client sends back for removal.

    Raises:
        InvalidSettings: if the payload is malformed
    """
    if raw is None or raw == "" or raw == b"":
        return []

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidSettings(f"Watermarks are not valid JSON: {e.msg}") from e

    if not isinstance(raw, list):
        raise InvalidSettings("Watermarks must be a JSON array")

    try:
        return [
            item if isinstance(item, WatermarkCandidate)
            else WatermarkCandidate.model_validate(item)
            for item in raw
        ]
    except ValidationError as e:
        raise InvalidSettings(f"Invalid watermarks: {_format_validation_error(e)}") from e

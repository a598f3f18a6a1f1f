"""Tests for job settings and candidate parsing."""

import json

import pytest

from watermark_cleaner.pipeline import (
    InvalidSettings,
    WatermarkCandidate,
    WatermarkLocation,
    WatermarkType,
    parse_candidates,
    parse_settings,
)


def test_defaults():
    settings = parse_settings(None)

    assert settings.header_height_percent == 9
    assert settings.footer_height_percent == 9
    assert settings.watermark_color1.as_tuple() == (221, 228, 250)
    assert settings.watermark_color2.as_tuple() == (211, 211, 211)
    assert settings.watermark_color1.tolerance == 30


def test_partial_settings_keep_defaults():
    settings = parse_settings('{"headerHeightPercent": 12}')

    assert settings.header_height_percent == 12
    assert settings.footer_height_percent == 9


def test_short_field_names_accepted():
    settings = parse_settings({
        "headerHeight": 5,
        "footerHeight": 7,
        "watermarkColor": {"r": 1, "g": 2, "b": 3, "tolerance": 4},
    })

    assert settings.header_height_percent == 5
    assert settings.footer_height_percent == 7
    assert settings.watermark_color1.as_tuple() == (1, 2, 3)
    assert settings.watermark_color1.tolerance == 4


def test_serializes_camel_case():
    payload = parse_settings(None).model_dump(by_alias=True)

    assert set(payload) == {
        "headerHeightPercent",
        "footerHeightPercent",
        "watermarkColor1",
        "watermarkColor2",
    }


@pytest.mark.parametrize("raw", [
    "{not json",
    "[1, 2]",
    '{"headerHeightPercent": 60}',
    '{"footerHeightPercent": -1}',
    '{"watermarkColor1": {"r": 256, "g": 0, "b": 0}}',
    '{"watermarkColor2": {"r": 0, "g": 0, "b": 0, "tolerance": -5}}',
])
def test_invalid_settings(raw):
    with pytest.raises(InvalidSettings):
        parse_settings(raw)


def test_invalid_settings_is_value_error():
    with pytest.raises(ValueError):
        parse_settings("{")


def test_candidate_round_trip_through_client_json():
    candidate = WatermarkCandidate(
        type=WatermarkType.TEXT,
        location=WatermarkLocation.CENTER,
        content="CONFIDENTIAL",
        pages=[2],
        preview_image="data:image/png;base64,AAAA",
    )
    payload = candidate.model_dump(by_alias=True, mode="json")

    assert payload["previewImage"] == "data:image/png;base64,AAAA"
    assert payload["type"] == "text"
    assert payload["selected"] is True

    payload["selected"] = False
    parsed = parse_candidates(json.dumps([payload]))

    assert parsed[0].key == (WatermarkType.TEXT, WatermarkLocation.CENTER)
    assert parsed[0].selected is False
    assert parsed[0].pages == [2]


def test_parse_candidates_rejects_garbage():
    assert parse_candidates(None) == []
    with pytest.raises(InvalidSettings):
        parse_candidates("{}")
    with pytest.raises(InvalidSettings):
        parse_candidates('[{"type": "video", "location": "header"}]')

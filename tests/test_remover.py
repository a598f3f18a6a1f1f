"""Tests for watermark removal and PDF reconstruction."""

import numpy as np
import pymupdf as fitz
import pytest

from watermark_cleaner.pipeline import (
    InvalidSettings,
    PageRaster,
    ProcessingError,
    ProcessingTimeout,
    Rasterizer,
    RemovalJob,
    RemovalPolicy,
    RemovalState,
    WatermarkCandidate,
    WatermarkDetector,
    WatermarkLocation,
    WatermarkRemover,
    WatermarkSettings,
    open_document,
)
from watermark_cleaner.pipeline.deadline import Deadline
from watermark_cleaner.pipeline.remover import removal_locations, select_candidates

from .conftest import COLOR_1, COLOR_2, PAGE_HEIGHT, PAGE_WIDTH, FlakyRasterizer

HEADER = WatermarkCandidate(type="image", location="header", pages=[1])
FOOTER = WatermarkCandidate(type="image", location="footer", pages=[1])
CENTER = WatermarkCandidate(type="text", location="center", content="CONFIDENTIAL", pages=[1])


def synthetic_raster():
    """100 rows: colored header (0-8), footer (91-99), mixed center."""
    pixels = np.full((100, 50, 3), 255, dtype=np.uint8)
    pixels[0:9] = COLOR_1
    pixels[91:100] = COLOR_2
    pixels[40, 10] = (0, 0, 0)
    pixels[50, 20] = COLOR_2
    pixels[95, 5] = (0, 0, 0)
    return PageRaster(pixels=pixels)


def render(pdf_bytes, index=0):
    with open_document(pdf_bytes) as document:
        return Rasterizer().rasterize(document.page(index), 1.0).pixels


def close_to(pixel, color, tolerance=3):
    return bool(np.all(np.abs(pixel.astype(int) - np.array(color)) <= tolerance))


def test_select_candidates_by_flag():
    unselected = CENTER.model_copy(update={"selected": False})

    assert select_candidates([HEADER, FOOTER, unselected]) == [HEADER, FOOTER]


def test_select_candidates_by_index_ignores_flag():
    unselected = FOOTER.model_copy(update={"selected": False})

    assert select_candidates([HEADER, unselected], [1]) == [unselected]
    assert select_candidates([HEADER, unselected], []) == []


def test_select_candidates_rejects_bad_index():
    with pytest.raises(InvalidSettings):
        select_candidates([HEADER], [3])
    with pytest.raises(InvalidSettings):
        select_candidates([HEADER], [-1])


def test_removal_locations_skip_center_and_repeats():
    assert removal_locations([CENTER, FOOTER, HEADER, FOOTER]) == [
        WatermarkLocation.FOOTER,
        WatermarkLocation.HEADER,
    ]


def test_footer_only_leaves_header_untouched():
    raster = synthetic_raster()
    before = raster.pixels.copy()

    WatermarkRemover().clean_raster(raster, WatermarkSettings(), [WatermarkLocation.FOOTER])

    assert np.array_equal(raster.pixels[0:9], before[0:9])
    assert np.all(raster.pixels[91:100][:, 6:] == 255)
    # Non-matching ink in the footer survives
    assert raster.pixels[95, 5].tolist() == [0, 0, 0]


def test_center_always_cleaned():
    raster = synthetic_raster()

    WatermarkRemover().clean_raster(raster, WatermarkSettings(), [])

    assert raster.pixels[50, 20].tolist() == [255, 255, 255]
    assert raster.pixels[40, 10].tolist() == [0, 0, 0]
    assert raster.pixels[0, 0].tolist() == list(COLOR_1)


def test_band_policy_whitens_everything_in_band():
    raster = synthetic_raster()
    remover = WatermarkRemover(policy=RemovalPolicy.BAND)

    remover.clean_raster(raster, WatermarkSettings(), [WatermarkLocation.FOOTER])

    assert np.all(raster.pixels[91:100] == 255)
    assert raster.pixels[0, 0].tolist() == list(COLOR_1)


def test_cleaning_is_idempotent():
    raster = synthetic_raster()
    remover = WatermarkRemover()
    locations = [WatermarkLocation.HEADER, WatermarkLocation.FOOTER]

    first = remover.clean_raster(raster, WatermarkSettings(), locations)
    once = raster.pixels.copy()
    second = remover.clean_raster(raster, WatermarkSettings(), locations)

    assert first > 0
    assert second == 0
    assert np.array_equal(raster.pixels, once)


def test_remove_preserves_pages_and_sizes(three_page_pdf):
    remover = WatermarkRemover(Rasterizer(), scale=1.0)

    result = remover.remove(three_page_pdf, candidates=[HEADER, FOOTER])

    assert result.page_count == 3
    with fitz.open(stream=result.pdf_bytes, filetype="pdf") as doc:
        assert doc.page_count == 3
        for page in doc:
            assert page.rect.width == pytest.approx(PAGE_WIDTH)
            assert page.rect.height == pytest.approx(PAGE_HEIGHT)


def test_remove_footer_only(three_page_pdf):
    remover = WatermarkRemover(Rasterizer(), scale=2.0)

    result = remover.remove(three_page_pdf, candidates=[HEADER, FOOTER], selected_indices=[1])

    assert result.locations == [WatermarkLocation.FOOTER]
    pixels = render(result.pdf_bytes)
    center_x = PAGE_WIDTH // 2
    assert close_to(pixels[13, center_x], COLOR_1)                 # header kept
    assert close_to(pixels[PAGE_HEIGHT - 13, center_x], (255, 255, 255))


def test_remove_keeps_body_text(three_page_pdf):
    result = WatermarkRemover(Rasterizer(), scale=1.0).remove(three_page_pdf, candidates=[HEADER, FOOTER])

    pixels = render(result.pdf_bytes, 1)
    body = pixels[60:130]
    assert body.min() < 100


def test_remove_center_stamp(stamped_pdf):
    result = WatermarkRemover(Rasterizer(), scale=1.0).remove(stamped_pdf, candidates=[])

    pixels = render(result.pdf_bytes)
    assert close_to(pixels[200, 100], (255, 255, 255))
    # No header/footer selected
    assert close_to(pixels[13, 100], COLOR_1)


def test_job_walks_through_states(three_page_pdf):
    job = RemovalJob()

    WatermarkRemover(Rasterizer(), scale=1.0).remove(
        three_page_pdf, candidates=[HEADER], job=job
    )

    assert job.state == RemovalState.DONE
    states = [state for state, _ in job.history]
    assert states == (
        [RemovalState.IDLE]
        + [RemovalState.RASTERIZING, RemovalState.MASKING, RemovalState.EMBEDDING] * 3
        + [RemovalState.FINALIZING, RemovalState.DONE]
    )


def test_invalid_transition_rejected():
    job = RemovalJob()
    with pytest.raises(RuntimeError):
        job.transition(RemovalState.EMBEDDING)


def test_page_failure_aborts_whole_job(three_page_pdf):
    job = RemovalJob()
    remover = WatermarkRemover(FlakyRasterizer(fail_pages={1}), scale=1.0)

    with pytest.raises(ProcessingError) as excinfo:
        remover.remove(three_page_pdf, candidates=[HEADER], job=job)

    assert excinfo.value.page_index == 1
    assert excinfo.value.state == RemovalState.RASTERIZING.value
    assert job.state == RemovalState.FAILED


def test_unreadable_document_is_processing_error():
    with pytest.raises(ProcessingError):
        WatermarkRemover(Rasterizer(), scale=1.0).remove(b"not a pdf")


def test_invalid_settings_fail_before_rendering(three_page_pdf):
    rasterizer = FlakyRasterizer()
    remover = WatermarkRemover(rasterizer, scale=1.0)

    with pytest.raises(InvalidSettings):
        remover.remove(three_page_pdf, {"headerHeightPercent": 60, "footerHeightPercent": 60})
    with pytest.raises(InvalidSettings):
        remover.remove(three_page_pdf, candidates=[HEADER], selected_indices=[5])

    assert rasterizer.calls == 0


def test_deadline_aborts_removal(three_page_pdf):
    deadline = Deadline(10)
    deadline._started -= 100

    with pytest.raises(ProcessingTimeout) as excinfo:
        WatermarkRemover(Rasterizer(), scale=1.0).remove(
            three_page_pdf, candidates=[HEADER], deadline=deadline
        )

    assert excinfo.value.page_index == 0


def test_detect_then_remove(three_page_pdf):
    detection = WatermarkDetector(Rasterizer(), scale=1.0).detect(three_page_pdf)

    result = WatermarkRemover(Rasterizer(), scale=1.0).remove(
        three_page_pdf, candidates=detection.candidates
    )

    pixels = render(result.pdf_bytes, 1)
    assert close_to(pixels[13, PAGE_WIDTH // 2], (255, 255, 255))
    assert close_to(pixels[PAGE_HEIGHT - 13, PAGE_WIDTH // 2], (255, 255, 255))


def test_rgba_whitening_skips_transparent_pixels():
    pixels = np.full((100, 50, 4), 255, dtype=np.uint8)
    pixels[50, 20] = (*COLOR_2, 128)
    pixels[50, 21] = (*COLOR_2, 5)
    pixels[95, 10] = (*COLOR_1, 10)
    pixels[95, 11] = (*COLOR_1, 200)
    raster = PageRaster(pixels=pixels)

    changed = WatermarkRemover(alpha=True).clean_raster(
        raster, WatermarkSettings(), [WatermarkLocation.FOOTER]
    )

    assert changed == 2
    assert raster.pixels[50, 20].tolist() == [255, 255, 255, 255]
    assert raster.pixels[95, 11].tolist() == [255, 255, 255, 255]
    assert raster.pixels[50, 21].tolist() == [*COLOR_2, 5]
    assert raster.pixels[95, 10].tolist() == [*COLOR_1, 10]


def test_rgba_band_policy_makes_band_opaque_white():
    pixels = np.zeros((100, 50, 4), dtype=np.uint8)
    raster = PageRaster(pixels=pixels)

    WatermarkRemover(policy=RemovalPolicy.BAND, alpha=True).clean_raster(
        raster, WatermarkSettings(), [WatermarkLocation.HEADER]
    )

    assert np.all(raster.pixels[0:9] == 255)
    assert np.all(raster.pixels[9:91] == 0)


def test_remove_with_alpha_rendering(three_page_pdf):
    remover = WatermarkRemover(Rasterizer(), scale=1.0, alpha=True)

    result = remover.remove(three_page_pdf, candidates=[HEADER, FOOTER])

    assert result.page_count == 3
    pixels = render(result.pdf_bytes)
    assert close_to(pixels[13, PAGE_WIDTH // 2], (255, 255, 255))
    assert close_to(pixels[PAGE_HEIGHT - 13, PAGE_WIDTH // 2], (255, 255, 255))
    assert close_to(pixels[PAGE_HEIGHT // 2, 2], (255, 255, 255))

"""
Watermark Routes

Endpoints for analysing PDFs for watermarks and removing the selected ones.
Both take a multipart upload and run the pipeline in the worker thread pool.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from ..config import get_settings
from ..pipeline import (
    InvalidSettings,
    LoadError,
    ProcessingTimeout,
    parse_candidates,
    parse_settings,
)
from ..schemas import AnalyzeResponse, ErrorResponse
from ..services.processing import ProcessingService, get_processing_service

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(tags=["watermark"])

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf", "application/octet-stream"}


def sanitize_for_log(value: str) -> str:
    """Sanitize a value for safe logging (prevent log injection)."""
    return re.sub(r'[\r\n\t]', '', str(value))


def header_safe(value: str, limit: int = 200) -> str:
    """Make a message usable as an HTTP header value."""
    value = sanitize_for_log(value).encode("ascii", "replace").decode("ascii")
    return value[:limit]


def parse_indices(raw: str | None) -> list[int] | None:
    """
    Parse the optional ``selected`` form field: a JSON array of indices.

    Raises:
        InvalidSettings: if it is not a list of integers
    """
    if raw is None or raw.strip() == "":
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidSettings(f"Selection is not valid JSON: {e.msg}") from e
    if not isinstance(value, list) or not all(
        isinstance(i, int) and not isinstance(i, bool) for i in value
    ):
        raise InvalidSettings("Selection must be a JSON array of integers")
    return value


async def read_pdf_upload(file: UploadFile) -> bytes:
    """Validate and read an uploaded PDF."""
    ext = Path(file.filename or "").suffix.lower()
    if ext and ext not in settings.allowed_extensions:
        if (file.content_type or "") not in PDF_CONTENT_TYPES:
            raise HTTPException(status_code=400, detail="Only PDF files are supported")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    size_mb = len(content) / (1024 * 1024)
    if size_mb > settings.max_upload_size_mb:
        raise HTTPException(
            status_code=413,
            detail=f"File too large ({size_mb:.1f}MB, max: {settings.max_upload_size_mb}MB)",
        )

    return content


# ============================================================================
# Analysis
# ============================================================================

@router.post(
    "/analyze-pdf",
    response_model=AnalyzeResponse,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def analyze_pdf(
    file: Annotated[UploadFile, File(description="PDF to analyse")],
    service: Annotated[ProcessingService, Depends(get_processing_service)],
    settings_json: Annotated[str | None, Form(alias="settings")] = None,
) -> AnalyzeResponse:
    """
    Find watermark candidates in a PDF.

    Header and footer bands are always proposed; center text watermarks are
    found by keyword. Each candidate carries a PNG preview as a data URI.
    """
    data = await read_pdf_upload(file)

    try:
        job_settings = parse_settings(settings_json)
        result = await run_in_threadpool(service.analyze, data, job_settings)
    except InvalidSettings as e:
        raise HTTPException(status_code=422, detail=str(e))
    except LoadError as e:
        raise HTTPException(status_code=400, detail=f"Could not read PDF: {e}")
    except ProcessingTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    except Exception as e:
        logger.exception("Failed to analyze %s", sanitize_for_log(file.filename or "upload"))
        raise HTTPException(status_code=500, detail=f"Error processing PDF: {e}")

    logger.info(
        "Analyzed %s: %d pages, %d candidates",
        sanitize_for_log(file.filename or "upload"),
        result.page_count,
        len(result.candidates),
    )

    return AnalyzeResponse(
        watermarks=result.candidates,
        page_count=result.page_count,
        skipped_pages=result.skipped_pages,
    )


# ============================================================================
# Removal
# ============================================================================

@router.post(
    "/remove-watermarks",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}},
        422: {"model": ErrorResponse},
    },
)
async def remove_watermarks(
    file: Annotated[UploadFile, File(description="PDF to clean")],
    service: Annotated[ProcessingService, Depends(get_processing_service)],
    watermarks: Annotated[str | None, Form()] = None,
    selected: Annotated[str | None, Form()] = None,
    settings_json: Annotated[str | None, Form(alias="settings")] = None,
    policy: Annotated[str | None, Form()] = None,
) -> Response:
    """
    Remove the selected watermarks and return the cleaned PDF.

    ``watermarks`` is the candidate list from analysis (only ``selected``
    entries are used) and ``selected`` an optional JSON array of indices into
    it. If removal fails the original PDF is returned with
    ``X-Watermark-Fallback: true``.
    """
    data = await read_pdf_upload(file)

    try:
        job_settings = parse_settings(settings_json)
        candidates = parse_candidates(watermarks)
        indices = parse_indices(selected)
        outcome = await run_in_threadpool(
            service.remove_with_fallback,
            data,
            job_settings,
            candidates,
            indices,
            policy,
        )
    except InvalidSettings as e:
        raise HTTPException(status_code=422, detail=str(e))

    headers = {"X-Watermark-Fallback": "true" if outcome.fallback else "false"}

    if outcome.fallback:
        filename = "original.pdf"
        headers["X-Watermark-Error"] = header_safe(outcome.error or "Removal failed")
        if outcome.failed_page is not None:
            headers["X-Watermark-Failed-Page"] = str(outcome.failed_page)
    else:
        filename = "processed.pdf"
        headers["X-Page-Count"] = str(outcome.result.page_count)

    headers["Content-Disposition"] = f'attachment; filename="{filename}"'

    logger.info(
        "Removal for %s finished (fallback=%s)",
        sanitize_for_log(file.filename or "upload"),
        outcome.fallback,
    )

    return Response(content=outcome.pdf_bytes, media_type="application/pdf", headers=headers)

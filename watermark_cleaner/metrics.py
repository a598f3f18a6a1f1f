"""
Prometheus metrics for watermark analysis and removal jobs.

Exposed by the API at /metrics alongside the HTTP metrics from
prometheus-fastapi-instrumentator.
"""
from prometheus_client import Counter, Histogram, Info

from . import __version__

# Info metrics
service_info = Info('watermark_cleaner', 'Service information')
service_info.info({'version': __version__})

# Job metrics
jobs_total = Counter(
    'watermark_jobs_total',
    'Total jobs processed',
    ['operation', 'status'],
)
job_duration_seconds = Histogram(
    'watermark_job_duration_seconds',
    'Job processing duration',
    ['operation'],
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120, 300]
)

# Page metrics
pages_processed = Counter(
    'watermark_pages_processed_total',
    'Pages rendered and processed',
    ['operation'],
)
pages_skipped = Counter(
    'watermark_pages_skipped_total',
    'Pages skipped during analysis because they could not be rendered',
)
page_duration_seconds = Histogram(
    'watermark_page_duration_seconds',
    'Average time per page within a job',
    ['operation'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10]
)

# Removal metrics
removal_fallbacks = Counter(
    'watermark_removal_fallbacks_total',
    'Removals that returned the original document',
    ['reason'],
)
candidates_found = Histogram(
    'watermark_candidates_found',
    'Candidates returned per analysis',
    buckets=[0, 1, 2, 3, 4, 5]
)


def record_job(operation: str, status: str, duration: float, pages: int = 0):
    """Record a finished job and its per-page timing."""
    jobs_total.labels(operation=operation, status=status).inc()
    job_duration_seconds.labels(operation=operation).observe(duration)
    if pages > 0:
        pages_processed.labels(operation=operation).inc(pages)
        page_duration_seconds.labels(operation=operation).observe(duration / pages)


def record_skipped_pages(count: int):
    """Record pages the detector could not analyse."""
    if count > 0:
        pages_skipped.inc(count)


def record_candidates(count: int):
    candidates_found.observe(count)


def record_fallback(reason: str):
    """Record a removal that fell back to the original bytes."""
    removal_fallbacks.labels(reason=reason).inc()

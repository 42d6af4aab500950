"""Prometheus metrics for the document pipeline.

Exposes key metrics for monitoring:
- OCR page counts and processing duration
- Analysis requests by provider and outcome
- Analysis duration histograms
- Cache hits

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Extraction metrics
documents_extracted_total = Counter(
    "taxdocs_documents_extracted_total",
    "Total documents run through an extractor",
    ["document_type", "status"],  # status: success, failed
)

ocr_pages_total = Counter(
    "taxdocs_ocr_pages_total",
    "Total PDF pages recognized by OCR",
)

ocr_processing_duration_seconds = Histogram(
    "taxdocs_ocr_processing_duration_seconds",
    "OCR duration per document in seconds",
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

# Analysis metrics
analysis_requests_total = Counter(
    "taxdocs_analysis_requests_total",
    "Total analysis requests",
    ["document_type", "outcome"],  # outcome: provider, cache, degraded, fallback
)

analysis_provider_calls_total = Counter(
    "taxdocs_analysis_provider_calls_total",
    "Provider calls by provider and status",
    ["provider", "status"],  # status: success, failed
)

analysis_duration_seconds = Histogram(
    "taxdocs_analysis_duration_seconds",
    "End-to-end analysis duration in seconds",
    buckets=(0.01, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST

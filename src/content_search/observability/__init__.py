"""Logging, Prometheus/OpenTelemetry metrics and tracing for the search service."""

from content_search.observability.context import bind, bound, log_fields
from content_search.observability.logging import JsonFormatter, configure_logging
from content_search.observability.metrics import (
    CACHE_EVENTS,
    DOCUMENTS_SKIPPED,
    INDEX_DOC_COUNT,
    INDEX_GENERATION,
    INDEX_REBUILD_LATENCY,
    INDEX_REBUILDS,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    configure_metrics,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)
from content_search.observability.tracing import (
    SearchSpanMiddleware,
    annotate_current_span,
    configure_tracing,
    create_span,
)


__all__ = [
    "CACHE_EVENTS",
    "DOCUMENTS_SKIPPED",
    "INDEX_DOC_COUNT",
    "INDEX_GENERATION",
    "INDEX_REBUILDS",
    "INDEX_REBUILD_LATENCY",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "SearchSpanMiddleware",
    "annotate_current_span",
    "bind",
    "bound",
    "configure_logging",
    "configure_metrics",
    "configure_tracing",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "log_fields",
    "track_latency",
]

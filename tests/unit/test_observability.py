"""Unit tests for logging, metrics and tracing helpers."""

import logging
import sys

import orjson
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import REGISTRY
import pytest

from content_search.config import Settings
from content_search.observability.context import bound, log_fields, span_fields
from content_search.observability.logging import JsonFormatter, configure_logging
from content_search.observability.metrics import (
    CACHE_EVENTS,
    INDEX_GENERATION,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)
from content_search.observability.tracing import annotate_current_span, create_span, request_operation


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("content_search.services.ttl_cache", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def span_exporter():
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return provider.get_tracer("tests"), exporter


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLogContext:
    def test_bound_fields_are_scoped_to_the_block(self):
        with bound(operation="search", generation=3, skipped=None):
            assert log_fields() == {"operation": "search", "generation": 3}
            with bound(generation=4):
                assert log_fields()["generation"] == 4
            assert log_fields()["generation"] == 3
        assert log_fields() == {}

    def test_span_fields_of_recording_span(self, span_exporter):
        tracer, _ = span_exporter
        with tracer.start_as_current_span("index.rebuild") as span:
            fields = span_fields(span)
        assert len(fields["trace_id"]) == 32
        assert len(fields["span_id"]) == 16

    def test_span_fields_of_placeholder_span(self):
        assert span_fields(trace.INVALID_SPAN) == {}


class TestJsonFormatter:
    def test_includes_bound_fields(self):
        with bound(operation="rebuild", generation=2):
            entry = orjson.loads(JsonFormatter().format(_record("Invalidated 3 cache entries")))

        assert entry["message"] == "Invalidated 3 cache entries"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "content_search.services.ttl_cache"
        assert entry["operation"] == "rebuild"
        assert entry["generation"] == 2

    def test_extra_fields(self):
        entry = orjson.loads(JsonFormatter().format(_record("call", token="s3cr3t", generation=4, tags={"b", "a"})))
        assert entry["token"] == "[REDACTED]"
        assert entry["generation"] == 4
        assert entry["tags"] == ["a", "b"]

    def test_long_values_are_clipped(self):
        formatter = JsonFormatter(max_message_length=10, max_value_length=5)
        entry = orjson.loads(formatter.format(_record("x" * 50, term="react hooks")))
        assert entry["message"] == "x" * 10 + "..."
        assert entry["term"] == "react..."

    def test_exception_is_rendered(self):
        try:
            raise ValueError("bad input")
        except ValueError:
            record = logging.LogRecord("content_search", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        entry = orjson.loads(JsonFormatter().format(record))
        assert "ValueError: bad input" in entry["exception"]


def test_configure_logging_uses_settings(restore_root_logger):
    configure_logging(Settings(log_level="debug", log_json=True))

    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 1
    assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_metrics_exposition():
    labels = {"operation": "search", "event": "hit"}
    before = REGISTRY.get_sample_value("search_cache_events_total", labels) or 0.0
    CACHE_EVENTS.labels(**labels).inc()
    INDEX_GENERATION.labels().set(7)
    with track_latency(SEARCH_LATENCY, operation="suggest"):
        pass

    assert REGISTRY.get_sample_value("search_cache_events_total", labels) == before + 1
    assert REGISTRY.get_sample_value("index_generation") == 7
    assert REGISTRY.get_sample_value("search_latency_seconds_count", {"operation": "suggest"}) >= 1
    assert b"search_cache_events_total" in get_metrics()
    assert get_metrics_content_type().startswith("text/plain")


class TestTracing:
    def test_create_span_propagates_errors(self):
        with pytest.raises(RuntimeError), create_span("test.failure", attributes={"skipped": None, "kept": 1}):
            raise RuntimeError("boom")

    def test_annotate_current_span_prefixes_search_attributes(self, span_exporter):
        tracer, exporter = span_exporter
        with tracer.start_as_current_span("GET /search"):
            annotate_current_span(generation=3, total=2, cache_hit=False, reason=None)

        (span,) = exporter.get_finished_spans()
        assert dict(span.attributes) == {"search.generation": 3, "search.total": 2, "search.cache_hit": False}

    def test_annotate_without_recording_span_is_a_no_op(self):
        annotate_current_span(generation=1)

    @pytest.mark.parametrize(
        ("path", "operation"),
        [("/search", "search"), ("/index/rebuild", "index"), ("/", "root"), ("", "root")],
    )
    def test_request_operation(self, path, operation):
        assert request_operation(path) == operation

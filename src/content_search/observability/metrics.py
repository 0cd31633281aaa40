"""Prometheus metrics for search, cache and rebuild signals with OTLP export."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcOTLPMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpOTLPMetricExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

from content_search.config import ObservabilityCollectorConfig, Settings


if TYPE_CHECKING:
    from collections.abc import Generator


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}
_BRIDGES: list[MetricBridge] = []


def _metric_reader(collector: ObservabilityCollectorConfig) -> PeriodicExportingMetricReader:
    if collector.otlp_protocol == "grpc":
        exporter = GrpcOTLPMetricExporter(
            endpoint=collector.collector_endpoint,
            headers=collector.headers,
            timeout=collector.timeout_seconds,
            insecure=collector.grpc_insecure,
        )
    else:
        exporter = HttpOTLPMetricExporter(
            endpoint=collector.collector_endpoint.removesuffix("/v1/traces") + "/v1/metrics",
            headers=collector.headers,
            timeout=collector.timeout_seconds,
        )
    return PeriodicExportingMetricReader(exporter)


def configure_metrics(settings: Settings) -> MeterProvider:
    """Install the meter provider the OpenTelemetry side of every bridge records into.

    Readers are fixed when a ``MeterProvider`` is built, so the provider is
    created once, with the OTLP reader attached when export is enabled.
    """
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    collector = settings.observability_collector
    readers = [_metric_reader(collector)] if collector.enabled else []
    provider = MeterProvider(
        resource=Resource.create({"service.name": settings.service_name, **collector.resource_attributes}),
        metric_readers=readers,
    )
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    for bridge in _BRIDGES:
        bridge.reset_otel_instrument()
    return provider


def _get_meter():
    # Before configure_metrics runs, instruments record into the global (no-op) provider.
    return _meter_holder.get("meter") or otel_metrics.get_meter(__name__)


def _series_key(labels: dict[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(labels.items()))


class _LabelledMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.set(self._labels, value)


class MetricBridge:
    """One signal, recorded as a Prometheus metric and as an OpenTelemetry instrument.

    Gauges map to an OTel up-down counter fed with the change since the last
    value set for the same label set.
    """

    def __init__(
        self,
        kind: str,
        name: str,
        description: str,
        labelnames: tuple[str, ...] = (),
        *,
        buckets: tuple[float, ...] | None = None,
    ) -> None:
        if kind == "counter":
            self._prom_metric: Counter | Histogram | Gauge = Counter(name, description, labelnames)
        elif kind == "histogram":
            self._prom_metric = Histogram(name, description, labelnames, buckets=buckets or Histogram.DEFAULT_BUCKETS)
        elif kind == "gauge":
            self._prom_metric = Gauge(name, description, labelnames)
        else:
            raise ValueError(f"Unknown metric kind: {kind}")
        self.kind = kind
        self.name = name
        self.description = description
        self._instrument = None
        self._gauge_values: dict[tuple[tuple[str, str], ...], float] = {}
        _BRIDGES.append(self)

    def labels(self, **labels: str) -> _LabelledMetric:
        return _LabelledMetric(self, labels)

    def reset_otel_instrument(self) -> None:
        self._instrument = None
        self._gauge_values.clear()

    def _otel(self):
        if self._instrument is None:
            meter = _get_meter()
            create = {
                "counter": meter.create_counter,
                "histogram": meter.create_histogram,
                "gauge": meter.create_up_down_counter,
            }[self.kind]
            self._instrument = create(self.name, description=self.description)
        return self._instrument

    def _series(self, labels: dict[str, str]):
        return self._prom_metric.labels(**labels) if labels else self._prom_metric

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._series(labels).inc(amount)
        self._otel().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._series(labels).observe(value)
        self._otel().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self._series(labels).set(value)
        key = _series_key(labels)
        delta = value - self._gauge_values.get(key, 0.0)
        if delta:
            self._otel().add(delta, labels)
        self._gauge_values[key] = value


SEARCH_REQUESTS = MetricBridge(
    "counter", "search_requests_total", "Total search and suggestion requests", ("operation", "status")
)
SEARCH_LATENCY = MetricBridge(
    "histogram",
    "search_latency_seconds",
    "Search and suggestion latency",
    ("operation",),
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)
CACHE_EVENTS = MetricBridge(
    "counter", "search_cache_events_total", "Query cache hits and misses", ("operation", "event")
)

INDEX_REBUILDS = MetricBridge("counter", "index_rebuilds_total", "Index rebuild attempts by outcome", ("status",))
INDEX_REBUILD_LATENCY = MetricBridge(
    "histogram",
    "index_rebuild_latency_seconds",
    "Index rebuild duration",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
INDEX_DOC_COUNT = MetricBridge("gauge", "index_document_count", "Documents in the published snapshot")
INDEX_GENERATION = MetricBridge("gauge", "index_generation", "Generation of the published snapshot")
DOCUMENTS_SKIPPED = MetricBridge(
    "counter",
    "index_documents_skipped_total",
    "Content records left out of a snapshot because they could not be normalized",
)

OTLP_EXPORT_ERRORS = MetricBridge(
    "counter", "otlp_export_errors_total", "OTLP exporter configuration failures", ("protocol",)
)
OTLP_EXPORT_STATUS = MetricBridge(
    "gauge", "otlp_exporter_enabled", "Whether the OTLP exporter is active (1) or not (0)", ("protocol",)
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Observe the wall time of the block, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

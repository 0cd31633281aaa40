"""Spans for search requests and index rebuilds.

``SearchSpanMiddleware`` opens one server span per HTTP request, named after
the operation the route serves. The service layer then adds what it learned
through ``annotate_current_span``: the snapshot generation it read, the result
total, and whether the cache answered. Rebuilds open their own ``index.rebuild``
span through ``create_span``.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcOTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpOTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from content_search.config import ObservabilityCollectorConfig, Settings
from content_search.observability.context import bind, bound, span_fields, unbind
from content_search.observability.metrics import OTLP_EXPORT_ERRORS, OTLP_EXPORT_STATUS


if TYPE_CHECKING:
    from opentelemetry.trace import Span

logger = logging.getLogger(__name__)

TRACER_NAME = "content_search"


def _span_exporter(collector: ObservabilityCollectorConfig) -> GrpcOTLPSpanExporter | HttpOTLPSpanExporter:
    if collector.otlp_protocol == "grpc":
        return GrpcOTLPSpanExporter(
            endpoint=collector.collector_endpoint,
            headers=collector.headers,
            timeout=collector.timeout_seconds,
            insecure=collector.grpc_insecure,
        )
    return HttpOTLPSpanExporter(
        endpoint=collector.collector_endpoint,
        headers=collector.headers,
        timeout=collector.timeout_seconds,
    )


def configure_tracing(settings: Settings) -> TracerProvider:
    """Install the global tracer provider, exporting spans when the collector is enabled.

    A broken exporter configuration is logged and counted; the service keeps
    running with local spans only.
    """
    collector = settings.observability_collector
    provider = TracerProvider(
        resource=Resource.create({"service.name": settings.service_name, **collector.resource_attributes})
    )
    if collector.enabled:
        protocol = collector.otlp_protocol
        try:
            exporter = _span_exporter(collector)
        except Exception as exc:
            logger.error("Failed to configure OTLP span exporter: %s", exc, exc_info=True)
            OTLP_EXPORT_ERRORS.labels(protocol=protocol).inc()
            OTLP_EXPORT_STATUS.labels(protocol=protocol).set(0)
        else:
            provider.add_span_processor(BatchSpanProcessor(exporter))
            OTLP_EXPORT_STATUS.labels(protocol=protocol).set(1)
            logger.info("Exporting spans over OTLP/%s to %s", protocol, collector.collector_endpoint)
    trace.set_tracer_provider(provider)
    return provider


def _set_attributes(span: Span, attributes: dict[str, Any] | None) -> None:
    for key, value in (attributes or {}).items():
        if value is not None:
            span.set_attribute(key, value)


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Open a span and bind its ids into the log context.

    Exceptions are recorded on the span and re-raised.
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(
        name, kind=kind, record_exception=False, set_status_on_exception=False
    ) as span:
        _set_attributes(span, attributes)
        token = bind(**span_fields(span))
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise
        finally:
            unbind(token)


def annotate_current_span(**attributes: Any) -> None:
    """Attach ``search.*`` attributes to the active span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        _set_attributes(span, {f"search.{key}": value for key, value in attributes.items()})


def request_operation(path: str) -> str:
    """``/index/rebuild`` -> ``index``; the bare root maps to ``root``."""
    return path.strip("/").split("/")[0] or "root"


class SearchSpanMiddleware:
    """ASGI middleware wrapping each HTTP request in a server span."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        path = scope.get("path", "")
        operation = request_operation(path)
        response_status: dict[str, int] = {}

        async def send_with_status(message: dict) -> None:
            if message["type"] == "http.response.start":
                response_status["code"] = message["status"]
            await send(message)

        attributes = {"http.request.method": method, "url.path": path, "search.operation": operation}
        with bound(operation=operation), create_span(
            f"{method} /{operation}", kind=SpanKind.SERVER, attributes=attributes
        ) as span:
            await self.app(scope, receive, send_with_status)
            code = response_status.get("code")
            if code is not None:
                span.set_attribute("http.response.status_code", code)
                if code >= 500:
                    span.set_status(Status(StatusCode.ERROR, f"HTTP {code}"))

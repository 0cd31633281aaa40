"""Log output for the search service.

``configure_logging`` sends records to stdout, either as one JSON object per
line (``JsonFormatter``) or as plain text, and mirrors them to the OTLP
collector when export is enabled.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import sys
from typing import Any

from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter as GrpcOTLPLogExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter as HttpOTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
import orjson
from pydantic import BaseModel

from content_search.config import ObservabilityCollectorConfig, Settings
from content_search.observability.context import log_fields


TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Attributes every LogRecord has; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _to_json(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return repr(value)


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Correlation fields bound in ``observability.context`` come first, then any
    ``extra=`` fields. Values under credential-like keys are masked, and long
    strings (search terms, upstream error bodies) are clipped.
    """

    SECRET_KEYS = frozenset({"authorization", "api_key", "password", "secret", "token"})

    def __init__(self, *, max_message_length: int = 2000, max_value_length: int = 500) -> None:
        super().__init__()
        self.max_message_length = max_message_length
        self.max_value_length = max_value_length

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _clip(record.getMessage(), self.max_message_length),
        }
        entry.update(log_fields())
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            entry[key] = self._field_value(key, value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=_to_json).decode("utf-8")

    def _field_value(self, key: str, value: Any) -> Any:
        if key.lower() in self.SECRET_KEYS:
            return "[REDACTED]"
        if isinstance(value, str):
            return _clip(value, self.max_value_length)
        return value


def _otlp_log_handler(service_name: str, collector: ObservabilityCollectorConfig) -> LoggingHandler:
    endpoint = collector.collector_endpoint
    if collector.otlp_protocol == "grpc":
        exporter = GrpcOTLPLogExporter(
            endpoint=endpoint,
            headers=collector.headers,
            timeout=collector.timeout_seconds,
            insecure=collector.grpc_insecure,
        )
    else:
        # The collector URL is configured for traces; logs go to the sibling path.
        exporter = HttpOTLPLogExporter(
            endpoint=endpoint.removesuffix("/v1/traces") + "/v1/logs",
            headers=collector.headers,
            timeout=collector.timeout_seconds,
        )
    provider = LoggerProvider(
        resource=Resource.create({"service.name": service_name, **collector.resource_attributes})
    )
    provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    return LoggingHandler(level=logging.INFO, logger_provider=provider)


def configure_logging(settings: Settings) -> None:
    """Replace the root handlers according to ``settings``."""
    root = logging.getLogger()
    root.setLevel(settings.get_log_level())
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(JsonFormatter() if settings.log_json else logging.Formatter(TEXT_FORMAT))
    root.addHandler(stream)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    collector = settings.observability_collector
    if collector.enabled:
        root.addHandler(_otlp_log_handler(settings.service_name, collector))

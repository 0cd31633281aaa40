"""Centralized configuration for content-search using Pydantic Settings."""

import logging
from typing import Annotated, Literal

from cron_converter import Cron
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ObservabilityCollectorConfig(BaseModel):
    """Configuration for OTLP trace, metric and log export."""

    model_config = {"extra": "forbid"}

    enabled: Annotated[
        bool,
        Field(
            description="Enable OTLP export to an external collector",
        ),
    ] = False

    otlp_protocol: Annotated[
        Literal["http", "grpc"],
        Field(
            description="OTLP transport protocol",
        ),
    ] = "grpc"

    collector_endpoint: Annotated[
        str,
        Field(
            description="OTLP collector endpoint (HTTP uses /v1/traces)",
            examples=["http://localhost:4317", "http://localhost:4318/v1/traces"],
        ),
    ] = "http://localhost:4317"

    headers: Annotated[
        dict[str, str],
        Field(
            description="Optional headers to include with OTLP requests",
        ),
    ] = Field(default_factory=dict)

    timeout_seconds: Annotated[
        int,
        Field(
            ge=1,
            le=60,
            description="OTLP exporter timeout in seconds",
        ),
    ] = 10

    grpc_insecure: Annotated[
        bool,
        Field(
            description="Allow insecure gRPC (plaintext) connections",
        ),
    ] = True

    resource_attributes: Annotated[
        dict[str, str],
        Field(
            description="Additional OpenTelemetry resource attributes",
        ),
    ] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every bound enforced on callers (page size, term length, suggestion limit)
    lives here so it is validated once at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    service_name: str = Field(default="content-search", description="OpenTelemetry service.name")

    # Content source
    content_source_url: str = Field(default="", description="JSON endpoint returning indexable content records")
    content_source_timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP timeout for fetching the corpus in seconds"
    )

    # Caching
    search_cache_ttl_seconds: float = Field(default=300, ge=0, description="TTL of cached search responses")
    suggestion_cache_ttl_seconds: float = Field(default=300, ge=0, description="TTL of cached suggestion lists")
    cache_sweep_schedule: str = Field(
        default="*/30 * * * *", description="Cron expression for the expired-entry sweep"
    )

    # Query bounds
    default_page_size: int = Field(default=20, ge=1, description="Page size used when none is given")
    max_page_size: int = Field(default=100, ge=1, description="Largest accepted page size")
    max_term_length: int = Field(default=100, ge=1, description="Longest accepted search term in characters")
    default_suggestion_limit: int = Field(default=10, ge=1, description="Suggestion limit used when none is given")
    max_suggestion_limit: int = Field(default=50, ge=1, description="Largest accepted suggestion limit")
    max_prefix_length: int = Field(default=100, ge=1, description="Longest accepted suggestion prefix")

    # Results
    highlight_window: int = Field(default=160, ge=20, description="Highlight window length in characters")
    highlight_style: Literal["none", "plain", "html"] = Field(
        default="none", description="How query terms are marked inside highlights"
    )
    popular_terms_capacity: int = Field(
        default=10_000, ge=1, description="Maximum distinct search terms tracked for popular suggestions"
    )

    # Lifecycle
    rebuild_on_startup: bool = Field(default=True, description="Run one rebuild when the application starts")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON log lines")

    observability_collector: ObservabilityCollectorConfig = Field(default_factory=ObservabilityCollectorConfig)

    # Server settings
    host: str = Field(default="127.0.0.1", description="HTTP server host")
    port: int = Field(default=15010, ge=1, le=65535, description="HTTP server port")

    @field_validator("cache_sweep_schedule")
    @classmethod
    def _check_schedule(cls, value: str) -> str:
        try:
            Cron(value)
        except ValueError as exc:
            raise ValueError(f"Invalid cron schedule '{value}': {exc}") from exc
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("DEFAULT_PAGE_SIZE must not exceed MAX_PAGE_SIZE")
        if self.default_suggestion_limit > self.max_suggestion_limit:
            raise ValueError("DEFAULT_SUGGESTION_LIMIT must not exceed MAX_SUGGESTION_LIMIT")
        return self

    def get_log_level(self) -> int:
        """Resolve ``log_level`` to a ``logging`` level number, defaulting to INFO."""
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO

"""ASGI application exposing search, suggestions and index administration.

Routes:
    GET  /search          ranked full-text search
    GET  /suggest         history/popular/auto suggestions
    POST /index/rebuild   run (or join) a rebuild
    GET  /index/status    published generation and document count
    POST /content/changed content mutation hook (background rebuild)
    GET  /health          liveness plus index state
    GET  /metrics         Prometheus exposition

Usage:
    CONTENT_SOURCE_URL=http://cms.local/api/content python -m content_search.app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from content_search.adapters.content_source import AbstractContentSource, HttpContentSource, InMemoryContentSource
from content_search.config import Settings
from content_search.domain.errors import QueryValidationError
from content_search.observability import (
    SearchSpanMiddleware,
    configure_logging,
    configure_metrics,
    configure_tracing,
    get_metrics,
    get_metrics_content_type,
)
from content_search.service_layer.search_service import SearchService


if TYPE_CHECKING:
    from starlette.requests import Request


logger = logging.getLogger(__name__)


def _envelope(data: Any = None, *, success: bool = True, message: str | None = None, status_code: int = 200):
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in data]
    return JSONResponse({"success": success, "data": data, "message": message}, status_code=status_code)


def _validation_response(exc: QueryValidationError) -> JSONResponse:
    return JSONResponse({"success": False, "data": None, **exc.to_dict()}, status_code=400)


def _int_param(request: Request, *names: str) -> int | None:
    for name in names:
        raw = request.query_params.get(name)
        if raw is None or raw == "":
            continue
        try:
            return int(raw)
        except ValueError as exc:
            raise QueryValidationError(names[0], f"{name} must be an integer") from exc
    return None


def _date_param(request: Request, *names: str) -> datetime | None:
    for name in names:
        raw = request.query_params.get(name)
        if not raw:
            continue
        try:
            return datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise QueryValidationError(names[0], f"{name} must be an ISO-8601 date") from exc
    return None


def _search_filters(request: Request) -> dict[str, Any]:
    params = request.query_params
    filters: dict[str, Any] = {}
    doc_type = params.get("type")
    if doc_type and doc_type != "all":
        filters["type"] = doc_type
    if status := params.get("status"):
        filters["status"] = status
    tags = [tag for value in params.getlist("tags") for tag in value.split(",") if tag.strip()]
    if tags:
        filters["tags"] = tags
    start = _date_param(request, "from", "start")
    end = _date_param(request, "to", "end")
    if start is not None or end is not None:
        filters["date_range"] = {"start": start, "end": end}
    return filters


class AppBuilder:
    """Builds the ASGI app around a ``SearchService``."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        content_source: AbstractContentSource | None = None,
        service: SearchService | None = None,
        configure_observability: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.content_source = content_source
        self.service = service
        self.configure_observability = configure_observability

    def build(self) -> Starlette:
        if self.configure_observability:
            self._configure_observability()

        service = self.service or SearchService(self.settings, self.content_source or self._default_source())
        self.service = service

        app = Starlette(
            debug=self.settings.log_level.lower() == "debug",
            routes=self._build_routes(service),
            middleware=[Middleware(SearchSpanMiddleware)],
            lifespan=self._build_lifespan(service),
        )
        app.state.search_service = service
        logger.info("Content search app initialized")
        return app

    def _configure_observability(self) -> None:
        configure_logging(self.settings)
        configure_metrics(self.settings)
        configure_tracing(self.settings)

    def _default_source(self) -> AbstractContentSource:
        if self.settings.content_source_url:
            return HttpContentSource(
                self.settings.content_source_url,
                timeout_seconds=self.settings.content_source_timeout_seconds,
            )
        logger.warning("CONTENT_SOURCE_URL is not set; serving an empty in-memory corpus")
        return InMemoryContentSource()

    def _build_lifespan(self, service: SearchService):
        @asynccontextmanager
        async def lifespan(_: Starlette):
            outcome = await service.start()
            if outcome is not None and not outcome.success:
                logger.warning("Startup rebuild failed (%s); serving an empty index", outcome.error_kind)
            try:
                yield
            finally:
                await service.shutdown()

        return lifespan

    def _build_routes(self, service: SearchService) -> list[Route]:
        return [
            Route("/search", endpoint=self._build_search_endpoint(service), methods=["GET"]),
            Route("/suggest", endpoint=self._build_suggest_endpoint(service), methods=["GET"]),
            Route("/index/rebuild", endpoint=self._build_rebuild_endpoint(service), methods=["POST"]),
            Route("/index/status", endpoint=self._build_status_endpoint(service), methods=["GET"]),
            Route("/content/changed", endpoint=self._build_content_changed_endpoint(service), methods=["POST"]),
            Route("/health", endpoint=self._build_health_endpoint(service), methods=["GET"]),
            Route("/metrics", endpoint=self._build_metrics_endpoint(), methods=["GET"]),
        ]

    def _build_search_endpoint(self, service: SearchService):
        async def search_endpoint(request: Request) -> Response:
            params = request.query_params
            try:
                page = _int_param(request, "page")
                response = service.search(
                    params.get("q", params.get("term", "")),
                    filters=_search_filters(request),
                    page=1 if page is None else page,
                    page_size=_int_param(request, "page_size", "pageSize"),
                    sort_by=params.get("sort_by", params.get("sortBy", "relevance")),
                )
            except QueryValidationError as exc:
                return _validation_response(exc)
            return _envelope(response)

        return search_endpoint

    def _build_suggest_endpoint(self, service: SearchService):
        async def suggest_endpoint(request: Request) -> Response:
            params = request.query_params
            try:
                suggestions = service.suggest(
                    params.get("q", params.get("prefix", "")),
                    limit=_int_param(request, "limit"),
                    history=params.getlist("history"),
                )
            except QueryValidationError as exc:
                return _validation_response(exc)
            return _envelope(suggestions)

        return suggest_endpoint

    def _build_rebuild_endpoint(self, service: SearchService):
        async def rebuild_endpoint(_: Request) -> Response:
            outcome = await service.rebuild_index(reason="manual")
            if outcome.success:
                message = "Rebuild joined an in-flight rebuild" if outcome.joined else "Index rebuilt"
                return _envelope(outcome, message=message)
            return _envelope(outcome, success=False, message=outcome.error_message, status_code=500)

        return rebuild_endpoint

    def _build_status_endpoint(self, service: SearchService):
        async def status_endpoint(_: Request) -> Response:
            return _envelope(service.index_status())

        return status_endpoint

    def _build_content_changed_endpoint(self, service: SearchService):
        async def content_changed_endpoint(request: Request) -> Response:
            try:
                payload = await request.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                return _envelope(success=False, message="Body must be a JSON object", status_code=400)
            document_id = payload.get("id") or payload.get("documentId")
            change = str(payload.get("change") or "updated")
            requested = service.notify_content_changed(None if document_id is None else str(document_id), change)
            message = "Rebuild requested" if requested else "Change queued behind the running rebuild"
            return _envelope({"rebuild_requested": requested}, message=message, status_code=202)

        return content_changed_endpoint

    def _build_health_endpoint(self, service: SearchService):
        async def health_endpoint(_: Request) -> Response:
            status = service.index_status()
            last = service.orchestrator.last_outcome
            healthy = last is None or last.success
            return JSONResponse(
                {
                    "status": "healthy" if healthy else "degraded",
                    "index": status.model_dump(mode="json"),
                    "cache": service.cache.stats,
                    "sweeper": service.sweeper.stats,
                },
                status_code=200,  # Always 200, check "status" field for degraded state
            )

        return health_endpoint

    def _build_metrics_endpoint(self):
        async def metrics_endpoint(_: Request) -> Response:
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

        return metrics_endpoint


def create_app(settings: Settings | None = None) -> Starlette:
    """Create the ASGI application from settings (environment when omitted)."""
    return AppBuilder(settings).build()


def main() -> None:
    """Main entry point for the HTTP server."""
    import uvicorn

    try:
        settings = Settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Configuration is invalid: %s", exc)
        raise SystemExit(2) from exc

    app = create_app(settings)
    logger.info("Starting server on %s:%d", settings.host, settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,  # Don't let uvicorn override our logging config
    )


if __name__ == "__main__":
    main()

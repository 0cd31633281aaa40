"""Single-flight rebuild coordinator owning the published index snapshot.

State machine::

    IDLE -> BUILDING -> (publish + invalidate cache) -> IDLE
                     -> (fetch or build failure)     -> IDLE

Only one rebuild runs at a time. A ``rebuild()`` call that arrives while one
is in flight joins it and receives the same outcome with ``joined=True``.

Readers take ``orchestrator.snapshot`` once per call. Publishing is a single
attribute assignment of a fully built, immutable ``IndexSnapshot``, so a
reader sees either the old generation or the new one, never a mix. The cache
is invalidated after that assignment and before ``rebuild()`` returns.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from enum import Enum
import logging
import time
from typing import Any

from content_search.adapters.content_source import AbstractContentSource
from content_search.domain.errors import ContentFetchError
from content_search.domain.search import IndexStatus, RebuildOutcome
from content_search.observability.context import bound
from content_search.observability.metrics import (
    DOCUMENTS_SKIPPED,
    INDEX_DOC_COUNT,
    INDEX_GENERATION,
    INDEX_REBUILD_LATENCY,
    INDEX_REBUILDS,
)
from content_search.observability.tracing import create_span
from content_search.search.index import IndexSnapshot, build_snapshot
from content_search.search.indexer import PreparedCorpus, prepare_documents
from content_search.services.ttl_cache import TTLCache


logger = logging.getLogger(__name__)


class RebuildState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"


class RebuildOrchestrator:
    """Builds snapshots from the content source and swaps them in atomically."""

    def __init__(
        self,
        content_source: AbstractContentSource,
        cache: TTLCache | None = None,
        *,
        build_in_thread: bool = True,
    ) -> None:
        self.content_source = content_source
        self.cache = cache
        self.build_in_thread = build_in_thread

        self._snapshot = IndexSnapshot.empty()
        self._state = RebuildState.IDLE
        self._inflight: asyncio.Task[RebuildOutcome] | None = None
        self._change_pending = False
        self._background: set[asyncio.Task] = set()
        self._last_outcome: RebuildOutcome | None = None
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def snapshot(self) -> IndexSnapshot:
        """The currently published snapshot. Read it once per operation."""
        return self._snapshot

    @property
    def state(self) -> RebuildState:
        return self._state

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    @property
    def last_outcome(self) -> RebuildOutcome | None:
        return self._last_outcome

    @property
    def is_building(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def status(self) -> IndexStatus:
        snapshot = self._snapshot
        return IndexStatus(
            generation=snapshot.generation,
            built_at=snapshot.built_at,
            document_count=snapshot.document_count,
            state=self._state.value,
        )

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "generation": self._snapshot.generation,
            "change_pending": self._change_pending,
            "background_tasks": len(self._background),
            "last_outcome": self._last_outcome.model_dump(mode="json") if self._last_outcome else None,
        }

    async def rebuild(self, reason: str = "manual") -> RebuildOutcome:
        """Rebuild the index, or join the rebuild already in flight.

        Never raises for fetch or build failures; those come back as an
        unsuccessful ``RebuildOutcome`` while the previous snapshot keeps serving.
        Cancelling the caller does not cancel the rebuild itself.
        """
        if self._closed:
            raise RuntimeError("Rebuild orchestrator has been shut down")
        self._loop = asyncio.get_running_loop()

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            INDEX_REBUILDS.labels(status="joined").inc()
            logger.info("Rebuild already in progress; joining it (reason=%s)", reason)
            outcome = await asyncio.shield(inflight)
            return outcome.model_copy(update={"joined": True})

        task = asyncio.create_task(self._run(reason), name="index-rebuild")
        self._inflight = task
        task.add_done_callback(self._on_rebuild_done)
        return await asyncio.shield(task)

    def request_rebuild(self, reason: str = "manual") -> asyncio.Task[RebuildOutcome]:
        """Start (or join) a rebuild in the background and return its task."""
        task = asyncio.create_task(self.rebuild(reason), name=f"index-rebuild-request-{reason}")
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the loop rebuilds run on, so synchronous code can report changes."""
        self._loop = loop

    def notify_content_changed(self, document_id: str | None = None, change: str = "updated") -> bool:
        """React to a content create/update/delete.

        On the orchestrator's loop, returns ``True`` when a rebuild was requested
        now and ``False`` when the change was folded into the follow-up of the
        rebuild already running. From any other thread (or from code with no
        running loop) the change is handed to the loop and ``True`` is returned.

        Raises:
            RuntimeError: no loop is known yet; call ``attach_loop`` (done by
                ``SearchService.start``) or run a rebuild first.
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None and (self._loop is None or self._loop.is_closed() or running is self._loop):
            return self._content_changed(document_id, change)
        if self._loop is None or self._loop.is_closed():
            raise RuntimeError("No event loop to schedule the rebuild on; start the search service first")
        self._loop.call_soon_threadsafe(self._content_changed, document_id, change)
        return True

    def _content_changed(self, document_id: str | None, change: str) -> bool:
        if self._closed:
            logger.debug("Ignoring content change for %s after shutdown", document_id)
            return False
        if self.is_building:
            # The running fetch may predate this change; rebuild once more afterwards.
            self._change_pending = True
            logger.info("Content %s %s during rebuild; follow-up rebuild queued", document_id, change)
            return False
        logger.info("Content %s %s; requesting rebuild", document_id, change)
        self.request_rebuild("content_changed")
        return True

    async def shutdown(self) -> None:
        """Stop accepting work, wait for the in-flight rebuild, release the snapshot."""
        self._closed = True
        self._change_pending = False
        pending: list[asyncio.Task] = [*self._background]
        if self._inflight is not None and not self._inflight.done():
            pending.append(self._inflight)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight = None
        self._snapshot = IndexSnapshot.empty(self._snapshot.generation)
        if self.cache is not None:
            self.cache.invalidate_all()
        logger.info("Rebuild orchestrator shut down")

    async def _run(self, reason: str) -> RebuildOutcome:
        self._state = RebuildState.BUILDING
        previous = self._snapshot
        generation = previous.generation + 1
        started = time.perf_counter()
        logger.info("Index rebuild started (reason=%s, target generation=%d)", reason, generation)
        try:
            attributes = {"rebuild.reason": reason, "rebuild.target_generation": generation}
            with bound(operation="rebuild", generation=generation), create_span(
                "index.rebuild", attributes=attributes
            ) as span:
                outcome = await self._fetch_and_build(reason, generation, previous, started)
                span.set_attribute("rebuild.success", outcome.success)
                span.set_attribute("index.generation", outcome.generation)
                span.set_attribute("index.document_count", outcome.document_count)
                span.set_attribute("rebuild.skipped", outcome.skipped_count)
                if outcome.error_kind:
                    span.set_attribute("rebuild.error_kind", outcome.error_kind)
        finally:
            self._state = RebuildState.IDLE
        self._last_outcome = outcome
        INDEX_REBUILD_LATENCY.labels().observe(outcome.duration_seconds)
        return outcome

    async def _fetch_and_build(
        self,
        reason: str,
        generation: int,
        previous: IndexSnapshot,
        started: float,
    ) -> RebuildOutcome:
        try:
            with create_span("index.fetch_content"):
                records = list(await self.content_source.fetch_indexable_content())
        except Exception as exc:
            detail = str(exc) or type(exc).__name__
            if isinstance(exc, ContentFetchError):
                logger.error("Index rebuild failed: content fetch error: %s", detail)
            else:
                logger.error("Index rebuild failed: unexpected content fetch error: %s", detail, exc_info=True)
            INDEX_REBUILDS.labels(status="fetch_failed").inc()
            return RebuildOutcome(
                success=False,
                generation=previous.generation,
                document_count=previous.document_count,
                duration_seconds=time.perf_counter() - started,
                reason=reason,
                error_kind="content_fetch_failed",
                error_message=detail,
            )

        try:
            if self.build_in_thread:
                corpus, snapshot = await asyncio.to_thread(self._build, records, generation)
            else:
                corpus, snapshot = self._build(records, generation)
        except Exception as exc:
            logger.error("Index rebuild failed while building: %s", exc, exc_info=True)
            INDEX_REBUILDS.labels(status="build_failed").inc()
            return RebuildOutcome(
                success=False,
                generation=previous.generation,
                document_count=previous.document_count,
                duration_seconds=time.perf_counter() - started,
                reason=reason,
                error_kind="build_failed",
                error_message=str(exc) or type(exc).__name__,
            )

        self._snapshot = snapshot
        if self.cache is not None:
            self.cache.invalidate_all()

        duration = time.perf_counter() - started
        INDEX_REBUILDS.labels(status="success").inc()
        INDEX_DOC_COUNT.labels().set(snapshot.document_count)
        INDEX_GENERATION.labels().set(snapshot.generation)
        if corpus.skipped_count:
            DOCUMENTS_SKIPPED.labels().inc(corpus.skipped_count)
        logger.info(
            "Index rebuild succeeded: generation=%d documents=%d skipped=%d archived=%d duration=%.3fs",
            snapshot.generation,
            snapshot.document_count,
            corpus.skipped_count,
            corpus.excluded_archived,
            duration,
        )
        return RebuildOutcome(
            success=True,
            generation=snapshot.generation,
            document_count=snapshot.document_count,
            skipped_count=corpus.skipped_count,
            duration_seconds=duration,
            reason=reason,
        )

    @staticmethod
    def _build(records: Sequence[Any], generation: int) -> tuple[PreparedCorpus, IndexSnapshot]:
        corpus = prepare_documents(records)
        snapshot = build_snapshot(corpus.documents, generation=generation, built_at=datetime.now(timezone.utc))
        return corpus, snapshot

    def _on_rebuild_done(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None
        if self._change_pending and not self._closed:
            self._change_pending = False
            logger.info("Running follow-up rebuild for content changed during the last build")
            self.request_rebuild("content_changed")

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background rebuild request failed: %s", exc, exc_info=exc)

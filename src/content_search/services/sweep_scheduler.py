"""Cron-driven background sweep of expired cache entries."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timedelta, timezone
import logging
from typing import Any

from cron_converter import Cron

from content_search.services.ttl_cache import TTLCache


logger = logging.getLogger(__name__)

# Upper bound on a single wait so a stop request or clock jump is noticed promptly.
MAX_WAIT_SECONDS = 60.0


class CacheSweepScheduler:
    """Run ``TTLCache.sweep`` on a cron schedule, independent of request handling."""

    def __init__(self, cache: TTLCache, schedule: str = "*/30 * * * *") -> None:
        self.cache = cache
        self.schedule = schedule
        self._cron = self._build_cron(schedule)
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

        self._total_sweeps = 0
        self._total_removed = 0
        self._last_sweep_at: datetime | None = None
        self._next_sweep_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "schedule": self.schedule,
            "running": self.running,
            "total_sweeps": self._total_sweeps,
            "total_removed": self._total_removed,
            "last_sweep_at": self._last_sweep_at.isoformat() if self._last_sweep_at else None,
            "next_sweep_at": self._next_sweep_at.isoformat() if self._next_sweep_at else None,
        }

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="cache-sweep")
        logger.info("Cache sweep scheduled with '%s'", self.schedule)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    def sweep_now(self) -> int:
        removed = self.cache.sweep()
        self._total_sweeps += 1
        self._total_removed += removed
        self._last_sweep_at = datetime.now(timezone.utc)
        return removed

    def next_run(self, now: datetime | None = None) -> datetime:
        start = now or datetime.now(timezone.utc)
        return self._cron.schedule(start_date=start).next()

    def _build_cron(self, schedule: str) -> Cron:
        try:
            return Cron(schedule)
        except ValueError:
            logger.error("Invalid cron schedule '%s'", schedule)
            raise

    async def _run_loop(self) -> None:
        try:
            next_run = self.next_run()
            while not self._stop_event.is_set():
                self._next_sweep_at = next_run
                now = datetime.now(timezone.utc)
                wait_seconds = min((next_run - now).total_seconds(), MAX_WAIT_SECONDS)
                if wait_seconds > 0:
                    try:
                        await asyncio.wait_for(self._stop_event.wait(), timeout=wait_seconds)
                        break
                    except asyncio.TimeoutError:
                        continue

                removed = self.sweep_now()
                logger.debug("Scheduled cache sweep removed %d entries", removed)
                next_run = self.next_run(max(next_run, datetime.now(timezone.utc)) + timedelta(seconds=1))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("Cache sweep loop failed", exc_info=True)

"""Stateful services: the query cache, its sweeper and the rebuild orchestrator."""

from .rebuild_orchestrator import RebuildOrchestrator, RebuildState
from .sweep_scheduler import CacheSweepScheduler
from .ttl_cache import TTLCache


__all__ = [
    "CacheSweepScheduler",
    "RebuildOrchestrator",
    "RebuildState",
    "TTLCache",
]

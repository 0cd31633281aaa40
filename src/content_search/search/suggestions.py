"""Suggestion engine merging history, popular and auto-complete sources.

Sources are consulted in priority order (``history`` > ``popular`` > ``auto``).
Suggestions are keyed by their normalized text; the first source to produce a
text keeps it, later sources only add their counts.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
import logging
import threading

from content_search.domain.search import SOURCE_PRIORITY, Suggestion
from content_search.search.index import IndexSnapshot
from content_search.search.normalizer import normalize_phrase


logger = logging.getLogger(__name__)

DEFAULT_POPULAR_CAPACITY = 10_000


class PopularityCounter:
    """Thread-safe counter of completed search terms keyed by normalized text.

    When more than ``capacity`` distinct terms are tracked, the least frequent
    ones are pruned (oldest first among equal counts).
    """

    def __init__(self, capacity: int = DEFAULT_POPULAR_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)

    def record(self, term: str, increment: int = 1) -> str | None:
        """Count one completed search. Returns the normalized key, or ``None`` if empty."""
        normalized = normalize_phrase(term)
        if not normalized or increment <= 0:
            return None
        with self._lock:
            self._counts[normalized] += increment
            if len(self._counts) > self.capacity:
                self._prune_locked()
        return normalized

    def count(self, term: str) -> int:
        normalized = normalize_phrase(term)
        with self._lock:
            return self._counts.get(normalized, 0)

    def most_common(self, limit: int | None = None) -> list[tuple[str, int]]:
        """Terms by count desc, then text asc."""
        with self._lock:
            items = list(self._counts.items())
        items.sort(key=lambda item: (-item[1], item[0]))
        return items if limit is None else items[:limit]

    def with_prefix(self, prefix: str) -> list[tuple[str, int]]:
        with self._lock:
            items = [(text, count) for text, count in self._counts.items() if text.startswith(prefix)]
        items.sort(key=lambda item: (-item[1], item[0]))
        return items

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()

    def _prune_locked(self) -> None:
        excess = len(self._counts) - self.capacity
        # sorted() is stable, so equal counts keep insertion order
        victims = sorted(self._counts.items(), key=lambda item: item[1])[:excess]
        for text, _ in victims:
            del self._counts[text]
        logger.debug("Pruned %d popular terms", len(victims))


class SuggestionEngine:
    """Builds ranked suggestions for a prefix against one snapshot."""

    def __init__(self, popularity: PopularityCounter) -> None:
        self.popularity = popularity

    def suggest(
        self,
        snapshot: IndexSnapshot,
        prefix: str,
        recent_history: Sequence[str] = (),
        limit: int = 10,
    ) -> list[Suggestion]:
        if limit <= 0:
            return []
        normalized = normalize_phrase(prefix)
        if not normalized:
            return [
                Suggestion(text=text, source="popular", count=count)
                for text, count in self.popularity.most_common(limit)
            ]

        candidates: list[Suggestion] = []
        candidates.extend(self._from_history(normalized, recent_history))
        candidates.extend(
            Suggestion(text=text, source="popular", count=count)
            for text, count in self.popularity.with_prefix(normalized)
        )
        candidates.extend(self._from_vocabulary(snapshot, normalized))
        return merge_suggestions(candidates)[:limit]

    def _from_history(self, normalized_prefix: str, recent_history: Iterable[str]) -> list[Suggestion]:
        matches: list[Suggestion] = []
        for entry in recent_history or ():
            text = normalize_phrase(entry)
            if text and text.startswith(normalized_prefix):
                matches.append(Suggestion(text=text, source="history"))
        return matches

    def _from_vocabulary(self, snapshot: IndexSnapshot, normalized_prefix: str) -> list[Suggestion]:
        *head, last = normalized_prefix.split(" ")
        lead = " ".join(head)
        completions = [
            (f"{lead} {token}" if lead else token, snapshot.published_term_totals.get(token, 0))
            for token in snapshot.tokens_with_prefix(last, published_only=True)
        ]
        completions.sort(key=lambda item: (-item[1], item[0]))
        return [Suggestion(text=text, source="auto", count=count) for text, count in completions]


def merge_suggestions(candidates: Iterable[Suggestion]) -> list[Suggestion]:
    """De-duplicate by text, keeping the highest-priority source and summing counts.

    Output keeps each text at the position of its winning entry, with entries
    grouped by source priority.
    """
    merged: dict[str, Suggestion] = {}
    for candidate in sorted(candidates, key=lambda item: SOURCE_PRIORITY[item.source]):
        current = merged.get(candidate.text)
        if current is None:
            merged[candidate.text] = candidate
            continue
        if candidate.count is not None:
            total = (current.count or 0) + candidate.count
            merged[candidate.text] = current.model_copy(update={"count": total})
    return list(merged.values())


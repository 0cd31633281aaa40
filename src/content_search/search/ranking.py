"""Field-weighted ranking over an index snapshot.

Scoring per document::

    score(d) = sum over distinct query tokens t, over fields f of d containing t:
               tf(t, f, d) * weight(f) * log(1 + N / (1 + df(t)))

``N`` is the number of documents in the snapshot and ``df`` the number of
documents containing ``t`` in any field. Filters are applied before a
document accumulates any score.

Orderings are total (the document id is always the last key), so paging
through the same snapshot never repeats or drops a result.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
import logging
import math

from content_search.domain.errors import QueryValidationError
from content_search.domain.model import Document
from content_search.domain.search import SearchFilters, SearchQuery, SortBy
from content_search.search.index import IndexSnapshot
from content_search.search.normalizer import tokenize
from content_search.search.snippet import HighlightStyle, build_highlight
from content_search.search.stats import term_weight


logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class ScoredResult:
    document: Document
    score: float
    highlight: str = ""


@dataclass(frozen=True)
class RankedPage:
    """One page of a globally ordered result list."""

    results: tuple[ScoredResult, ...]
    total: int
    page: int
    page_size: int
    tokens: tuple[str, ...]
    generation: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.page_size)


def validate_pagination(page: int, page_size: int, max_page_size: int = DEFAULT_MAX_PAGE_SIZE) -> None:
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise QueryValidationError("page", "page must be an integer >= 1")
    if isinstance(page_size, bool) or not isinstance(page_size, int) or not 1 <= page_size <= max_page_size:
        raise QueryValidationError("page_size", f"page_size must be between 1 and {max_page_size}")


def query_tokens(term: str) -> tuple[str, ...]:
    """Normalized, de-duplicated query tokens in first-seen order.

    Terms are plain text, tokenized the same way as titles and tags.
    """
    return tuple(dict.fromkeys(tokenize(term)))


def matches_filters(document: Document, filters: SearchFilters) -> bool:
    if filters.type is not None and document.type != filters.type:
        return False
    if filters.status != "all" and document.status != filters.status:
        return False
    if filters.date_range is not None and not filters.date_range.contains(document.published_at):
        return False
    return not (filters.tags and not document.has_tags(filters.tags))


def _relevance_key(result: ScoredResult) -> tuple:
    doc = result.document
    return (-result.score, -doc.popularity, -doc.published_timestamp, doc.id)


def _recency_key(result: ScoredResult) -> tuple:
    doc = result.document
    return (-doc.published_timestamp, -result.score, -doc.popularity, doc.id)


def _popularity_key(result: ScoredResult) -> tuple:
    doc = result.document
    return (-doc.popularity, -result.score, -doc.published_timestamp, doc.id)


SORT_KEYS: dict[str, Callable[[ScoredResult], tuple]] = {
    "relevance": _relevance_key,
    "recency": _recency_key,
    "popularity": _popularity_key,
}


class RankingEngine:
    """Scores, orders and paginates documents of one snapshot."""

    def __init__(
        self,
        *,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
        highlight_window: int = 160,
        highlight_style: HighlightStyle = "none",
    ) -> None:
        self.max_page_size = max_page_size
        self.highlight_window = highlight_window
        self.highlight_style = highlight_style

    def score(self, snapshot: IndexSnapshot, tokens: Sequence[str], filters: SearchFilters) -> dict[str, float]:
        """Return ``document_id -> score`` for filtered documents matching any token."""
        scores: dict[str, float] = {}
        admitted: dict[str, bool] = {}
        for token in tokens:
            postings = snapshot.postings_for(token)
            if not postings:
                continue
            idf = snapshot.idf(token)
            for posting in postings:
                allowed = admitted.get(posting.document_id)
                if allowed is None:
                    document = snapshot.get_document(posting.document_id)
                    allowed = document is not None and matches_filters(document, filters)
                    admitted[posting.document_id] = allowed
                if not allowed:
                    continue
                scores[posting.document_id] = scores.get(posting.document_id, 0.0) + term_weight(
                    posting.term_frequency, posting.field_weight, idf
                )
        return scores

    def rank(
        self,
        snapshot: IndexSnapshot,
        tokens: Sequence[str],
        filters: SearchFilters,
        sort_by: SortBy = "relevance",
    ) -> list[ScoredResult]:
        """Every matching document, globally ordered, without highlights."""
        scores = self.score(snapshot, tokens, filters)
        ranked = [
            ScoredResult(document=snapshot.documents[document_id], score=score)
            for document_id, score in scores.items()
        ]
        ranked.sort(key=SORT_KEYS[sort_by])
        return ranked

    def search(self, snapshot: IndexSnapshot, query: SearchQuery) -> RankedPage:
        validate_pagination(query.page, query.page_size, self.max_page_size)
        tokens = query_tokens(query.term)
        if not tokens:
            return RankedPage(
                results=(),
                total=0,
                page=query.page,
                page_size=query.page_size,
                tokens=(),
                generation=snapshot.generation,
            )

        ranked = self.rank(snapshot, tokens, query.filters, query.sort_by)
        offset = (query.page - 1) * query.page_size
        token_set = frozenset(tokens)
        page = tuple(
            ScoredResult(
                document=result.document,
                score=result.score,
                highlight=build_highlight(
                    result.document.body,
                    token_set,
                    window=self.highlight_window,
                    style=self.highlight_style,
                ),
            )
            for result in ranked[offset : offset + query.page_size]
        )
        logger.debug(
            "Ranked %d documents for %d tokens (generation %d)", len(ranked), len(tokens), snapshot.generation
        )
        return RankedPage(
            results=page,
            total=len(ranked),
            page=query.page,
            page_size=query.page_size,
            tokens=tokens,
            generation=snapshot.generation,
        )

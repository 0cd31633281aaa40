"""Immutable inverted index snapshots.

A snapshot maps every token to the postings that contain it, together with
the documents needed to hydrate results. ``SnapshotWriter`` accumulates
documents and ``build`` produces the finished snapshot in one step; nothing
holds a reference to a half-built snapshot.

Field weights are fixed design parameters:

========  ======
field     weight
========  ======
title     5
tags      3
body      1
========  ======
"""

from __future__ import annotations

from bisect import bisect_left
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType

from content_search.domain.model import Document
from content_search.search.normalizer import tokenize
from content_search.search.stats import calculate_idf, count_terms


TITLE_WEIGHT = 5
TAGS_WEIGHT = 3
BODY_WEIGHT = 1

FIELD_WEIGHTS: Mapping[str, int] = MappingProxyType(
    {
        "title": TITLE_WEIGHT,
        "tags": TAGS_WEIGHT,
        "body": BODY_WEIGHT,
    }
)

_EMPTY_POSTINGS: tuple[PostingEntry, ...] = ()


@dataclass(frozen=True)
class PostingEntry:
    """Occurrences of one token in one field of one document."""

    document_id: str
    field: str
    field_weight: int
    term_frequency: int


@dataclass(frozen=True)
class IndexSnapshot:
    """A fully built, read-only index generation.

    Every mapping is wrapped in ``MappingProxyType`` and every posting list is a
    tuple, so a published snapshot can be read from any number of threads
    without locking.
    """

    generation: int
    built_at: datetime | None
    documents: Mapping[str, Document]
    postings: Mapping[str, tuple[PostingEntry, ...]]
    document_frequency: Mapping[str, int]
    term_totals: Mapping[str, int]
    vocabulary: tuple[str, ...] = ()
    # Restricted to published documents; feeds public auto-completion.
    published_term_totals: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    published_vocabulary: tuple[str, ...] = ()

    @classmethod
    def empty(cls, generation: int = 0) -> IndexSnapshot:
        return cls(
            generation=generation,
            built_at=None,
            documents=MappingProxyType({}),
            postings=MappingProxyType({}),
            document_frequency=MappingProxyType({}),
            term_totals=MappingProxyType({}),
        )

    @property
    def document_count(self) -> int:
        return len(self.documents)

    @property
    def is_empty(self) -> bool:
        return not self.documents

    def get_document(self, document_id: str) -> Document | None:
        return self.documents.get(document_id)

    def postings_for(self, token: str) -> tuple[PostingEntry, ...]:
        return self.postings.get(token, _EMPTY_POSTINGS)

    def idf(self, token: str) -> float:
        return calculate_idf(self.document_frequency.get(token, 0), self.document_count)

    def tokens_with_prefix(self, prefix: str, *, published_only: bool = False) -> list[str]:
        """Vocabulary tokens starting with ``prefix``, in lexicographic order.

        With ``published_only`` tokens that occur only in unpublished documents are left out.
        """
        if not prefix:
            return []
        vocabulary = self.published_vocabulary if published_only else self.vocabulary
        matches: list[str] = []
        start = bisect_left(vocabulary, prefix)
        for token in vocabulary[start:]:
            if not token.startswith(prefix):
                break
            matches.append(token)
        return matches


class SnapshotWriter:
    """Builds an ``IndexSnapshot`` from ``Document`` values."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        # token -> document_id -> field -> term frequency
        self._postings: defaultdict[str, dict[str, dict[str, int]]] = defaultdict(dict)

    def __len__(self) -> int:
        return len(self._documents)

    def add_document(self, document: Document) -> str:
        if document.id in self._documents:
            msg = f"Duplicate document id: {document.id}"
            raise ValueError(msg)

        self._documents[document.id] = document
        tag_tokens: list[str] = []
        for tag in sorted(document.tags):
            tag_tokens.extend(tokenize(tag))

        for field_name, tokens in (
            ("title", tokenize(document.title)),
            ("tags", tag_tokens),
            ("body", tokenize(document.body)),
        ):
            for token, frequency in count_terms(tokens).items():
                self._postings[token].setdefault(document.id, {})[field_name] = frequency
        return document.id

    def build(self, *, generation: int, built_at: datetime | None = None) -> IndexSnapshot:
        postings: dict[str, tuple[PostingEntry, ...]] = {}
        document_frequency: dict[str, int] = {}
        term_totals: dict[str, int] = {}
        published_term_totals: dict[str, int] = {}

        for token, by_document in self._postings.items():
            entries: list[PostingEntry] = []
            total = 0
            published_total = 0
            for document_id in sorted(by_document):
                published = self._documents[document_id].status == "published"
                for field_name in FIELD_WEIGHTS:
                    frequency = by_document[document_id].get(field_name)
                    if not frequency:
                        continue
                    entries.append(
                        PostingEntry(
                            document_id=document_id,
                            field=field_name,
                            field_weight=FIELD_WEIGHTS[field_name],
                            term_frequency=frequency,
                        )
                    )
                    total += frequency
                    if published:
                        published_total += frequency
            postings[token] = tuple(entries)
            document_frequency[token] = len(by_document)
            term_totals[token] = total
            if published_total:
                published_term_totals[token] = published_total

        return IndexSnapshot(
            generation=generation,
            built_at=built_at or datetime.now(timezone.utc),
            documents=MappingProxyType(dict(self._documents)),
            postings=MappingProxyType(postings),
            document_frequency=MappingProxyType(document_frequency),
            term_totals=MappingProxyType(term_totals),
            vocabulary=tuple(sorted(postings)),
            published_term_totals=MappingProxyType(published_term_totals),
            published_vocabulary=tuple(sorted(published_term_totals)),
        )


def build_snapshot(
    documents: Iterable[Document],
    *,
    generation: int,
    built_at: datetime | None = None,
) -> IndexSnapshot:
    """Index ``documents`` in a single pass. An empty iterable yields an empty snapshot."""

    writer = SnapshotWriter()
    for document in documents:
        writer.add_document(document)
    return writer.build(generation=generation, built_at=built_at)

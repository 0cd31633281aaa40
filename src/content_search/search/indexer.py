"""Turn raw content records into index-ready documents.

Each record is prepared on its own. A record that cannot be used (invalid
fields, duplicate id, no indexable text) is reported as skipped and the rest
of the corpus still builds.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
from typing import Any

from pydantic import ValidationError

from content_search.domain.errors import NormalizationSkippedError
from content_search.domain.model import Document, IndexableContent
from content_search.search.normalizer import strip_markup, tokenize


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkippedRecord:
    document_id: str | None
    reason: str


@dataclass
class PreparedCorpus:
    """Documents ready for indexing plus everything that was left out."""

    documents: list[Document] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)
    excluded_archived: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def _record_id(record: Any) -> str | None:
    if isinstance(record, IndexableContent):
        return record.id
    if isinstance(record, Mapping):
        value = record.get("id")
        return None if value is None else str(value)
    return None


def to_content(record: IndexableContent | Mapping[str, Any]) -> IndexableContent:
    """Validate a loosely shaped record, raising ``NormalizationSkippedError`` when unusable."""
    if isinstance(record, IndexableContent):
        return record
    if not isinstance(record, Mapping):
        raise NormalizationSkippedError(None, f"unsupported record type {type(record).__name__}")
    try:
        return IndexableContent.model_validate(record)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
        raise NormalizationSkippedError(_record_id(record), f"invalid fields: {fields}") from exc


def prepare_document(content: IndexableContent) -> Document:
    """Normalize one record into a ``Document``.

    Only the body is Markdown; the title and tags are plain text and are kept
    exactly as authored. Raises ``NormalizationSkippedError`` when neither the
    title, the tags nor the body yields a single token.
    """
    body = strip_markup(content.raw_body)
    tags = frozenset(tag for tag in content.tags if tokenize(tag))

    if not (tokenize(content.title) or tags or tokenize(body)):
        raise NormalizationSkippedError(content.id, "no indexable text")

    return Document(
        id=content.id,
        type=content.type,
        title=content.title,
        body=body,
        tags=tags,
        status="draft" if content.status == "draft" else "published",
        published_at=content.published_at,
        popularity=content.popularity,
        slug=content.slug,
    )


def prepare_documents(records: Iterable[IndexableContent | Mapping[str, Any]]) -> PreparedCorpus:
    """Prepare a whole corpus, dropping archived, duplicate and unusable records."""

    corpus = PreparedCorpus()
    seen: set[str] = set()
    for record in records:
        try:
            content = to_content(record)
            if content.status == "archived":
                corpus.excluded_archived += 1
                continue
            if content.id in seen:
                raise NormalizationSkippedError(content.id, "duplicate document id")
            document = prepare_document(content)
        except NormalizationSkippedError as exc:
            logger.warning("Skipping document %s: %s", exc.document_id or "<unknown>", exc.reason)
            corpus.skipped.append(SkippedRecord(document_id=exc.document_id, reason=exc.reason))
            continue
        seen.add(document.id)
        corpus.documents.append(document)
    return corpus

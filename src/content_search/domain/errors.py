"""Error types raised by the indexing and query layers."""

from __future__ import annotations


class ContentSearchError(Exception):
    """Base class for all content search errors."""


class NormalizationSkippedError(ContentSearchError):
    """A single record could not be turned into an indexable document.

    Raised while preparing one record for the snapshot. The indexer catches it,
    logs it, and drops that record; the rebuild itself continues.
    """

    def __init__(self, document_id: str | None, reason: str) -> None:
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Skipped document {document_id or '<unknown>'}: {reason}")


class ContentFetchError(ContentSearchError):
    """The content collaborator failed to return the corpus."""

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        message = reason if not detail else f"{reason}: {detail}"
        super().__init__(message)


class QueryValidationError(ContentSearchError):
    """Caller supplied an out-of-range query parameter."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, str]:
        return {"error": "validation_error", "field": self.field, "message": self.message}

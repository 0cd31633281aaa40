"""Content source abstractions and implementations.

The content source is the source of truth the index is rebuilt from. It
returns raw records; validating and normalizing each record is the
indexer's job, so one malformed record never fails the whole fetch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
import logging
from typing import Any

import httpx
import orjson

from content_search.domain.errors import ContentFetchError
from content_search.domain.model import IndexableContent


logger = logging.getLogger(__name__)

ContentRecord = IndexableContent | Mapping[str, Any]


class AbstractContentSource(ABC):
    """Abstract provider of the full indexable corpus."""

    @abstractmethod
    async def fetch_indexable_content(self) -> Sequence[ContentRecord]:
        """Return every record that may belong in the index.

        Raises:
            ContentFetchError: the corpus could not be retrieved.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Optional hook for releasing connections."""

        return


class InMemoryContentSource(AbstractContentSource):
    """Content source backed by a dict, used for tests and embedding."""

    def __init__(self, records: Iterable[ContentRecord] = ()) -> None:
        self._records: dict[str, ContentRecord] = {}
        self._failure: Exception | None = None
        self.fetch_count = 0
        self.replace_all(records)

    def __len__(self) -> int:
        return len(self._records)

    def replace_all(self, records: Iterable[ContentRecord]) -> None:
        self._records = {}
        for position, record in enumerate(records):
            self._records[self._key(record, position)] = record

    def upsert(self, record: ContentRecord) -> str:
        key = self._key(record, len(self._records))
        self._records[key] = record
        return key

    def remove(self, document_id: str) -> bool:
        return self._records.pop(document_id, None) is not None

    def fail_with(self, error: Exception | None) -> None:
        """Make subsequent fetches raise ``error`` (``None`` restores normal behavior)."""
        self._failure = error

    async def fetch_indexable_content(self) -> list[ContentRecord]:
        self.fetch_count += 1
        if self._failure is not None:
            raise self._failure
        return list(self._records.values())

    @staticmethod
    def _key(record: ContentRecord, position: int) -> str:
        if isinstance(record, IndexableContent):
            return record.id
        value = record.get("id") if isinstance(record, Mapping) else None
        return str(value) if value not in (None, "") else f"__record_{position}"


class HttpContentSource(AbstractContentSource):
    """Fetches the corpus as JSON from an HTTP endpoint.

    The payload is either a list of records or an object with an ``items``
    list. Keys may be camelCase (``rawBody``, ``publishedAt``) or snake_case.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 30.0,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("HttpContentSource requires a URL")
        self.url = url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
            follow_redirects=True,
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )

    async def fetch_indexable_content(self) -> list[ContentRecord]:
        logger.debug("Fetching indexable content from %s", self.url)
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ContentFetchError("content source returned an error", f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ContentFetchError("content source unreachable", str(exc) or type(exc).__name__) from exc

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise ContentFetchError("content source returned invalid JSON", str(exc)) from exc

        items = payload.get("items") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise ContentFetchError("content source returned an unexpected payload", type(payload).__name__)

        logger.debug("Fetched %d records from %s", len(items), self.url)
        return items

    async def close(self) -> None:
        await self._client.aclose()

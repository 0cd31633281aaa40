"""Unit tests for content source adapters."""

import httpx
import orjson
import pytest

from content_search.adapters.content_source import HttpContentSource, InMemoryContentSource
from content_search.domain.errors import ContentFetchError
from content_search.domain.model import IndexableContent


URL = "http://cms.test/api/content"


def _source(handler) -> HttpContentSource:
    return HttpContentSource(URL, timeout_seconds=5, transport=httpx.MockTransport(handler))


class TestInMemoryContentSource:
    @pytest.mark.asyncio
    async def test_fetch_returns_records(self, blog_records):
        source = InMemoryContentSource(blog_records)
        records = await source.fetch_indexable_content()
        assert [record["id"] for record in records] == [record["id"] for record in blog_records]
        assert source.fetch_count == 1

    @pytest.mark.asyncio
    async def test_upsert_and_remove(self):
        source = InMemoryContentSource([{"id": "a", "title": "A"}])
        source.upsert({"id": "a", "title": "A v2"})
        source.upsert(IndexableContent(id="b", title="B"))
        assert len(source) == 2
        assert source.remove("a") is True
        assert source.remove("missing") is False
        records = await source.fetch_indexable_content()
        assert [record.id for record in records] == ["b"]

    @pytest.mark.asyncio
    async def test_records_without_id_are_kept(self):
        source = InMemoryContentSource([{"title": "first"}, {"title": "second"}])
        assert len(await source.fetch_indexable_content()) == 2

    @pytest.mark.asyncio
    async def test_fail_with(self):
        source = InMemoryContentSource()
        source.fail_with(ContentFetchError("down"))
        with pytest.raises(ContentFetchError):
            await source.fetch_indexable_content()
        source.fail_with(None)
        assert await source.fetch_indexable_content() == []


class TestHttpContentSource:
    @pytest.mark.asyncio
    async def test_fetches_json_list(self, example_records):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=orjson.dumps(example_records))

        source = _source(handler)
        try:
            records = await source.fetch_indexable_content()
        finally:
            await source.close()

        assert records == example_records
        assert str(requests[0].url) == URL
        assert requests[0].headers["accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_fetches_items_envelope(self, example_records):
        source = _source(lambda request: httpx.Response(200, json={"items": example_records, "total": 2}))
        records = await source.fetch_indexable_content()
        await source.close()
        assert [record["id"] for record in records] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        source = _source(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(ContentFetchError) as exc_info:
            await source.fetch_indexable_content()
        await source.close()
        assert exc_info.value.reason == "content source returned an error"
        assert exc_info.value.detail == "HTTP 503"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        source = _source(handler)
        with pytest.raises(ContentFetchError, match="unreachable"):
            await source.fetch_indexable_content()
        await source.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        source = _source(lambda request: httpx.Response(200, content=b"<html>not json</html>"))
        with pytest.raises(ContentFetchError, match="invalid JSON"):
            await source.fetch_indexable_content()
        await source.close()

    @pytest.mark.asyncio
    async def test_unexpected_payload_shape(self):
        source = _source(lambda request: httpx.Response(200, json={"data": []}))
        with pytest.raises(ContentFetchError, match="unexpected payload"):
            await source.fetch_indexable_content()
        await source.close()

    def test_requires_url(self):
        with pytest.raises(ValueError):
            HttpContentSource("")

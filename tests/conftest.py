"""Shared test fixtures and configuration."""

from datetime import datetime, timezone
import os

import pytest


# Complete test environment that overrides every config value a developer .env could set
TEST_ENV = {
    "SERVICE_NAME": "content-search-test",
    "CONTENT_SOURCE_URL": "",
    "SEARCH_CACHE_TTL_SECONDS": "300",
    "SUGGESTION_CACHE_TTL_SECONDS": "300",
    "CACHE_SWEEP_SCHEDULE": "*/30 * * * *",
    "DEFAULT_PAGE_SIZE": "20",
    "MAX_PAGE_SIZE": "100",
    "MAX_TERM_LENGTH": "100",
    "DEFAULT_SUGGESTION_LIMIT": "10",
    "MAX_SUGGESTION_LIMIT": "50",
    "MAX_PREFIX_LENGTH": "100",
    "HIGHLIGHT_WINDOW": "160",
    "HIGHLIGHT_STYLE": "none",
    "REBUILD_ON_STARTUP": "true",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
    # Proxy settings - ensure they're cleared for tests
    "http_proxy": "",
    "https_proxy": "",
    "all_proxy": "",
    "no_proxy": "",
}


for key, value in TEST_ENV.items():
    os.environ[key] = value

from content_search.adapters.content_source import InMemoryContentSource
from content_search.config import Settings
from content_search.domain.model import Document


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset environment variables before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(rebuild_on_startup=False)


def make_document(doc_id: str, **overrides) -> Document:
    """Build a Document with neutral defaults."""
    values = {
        "id": doc_id,
        "type": "post",
        "title": "",
        "body": "",
        "tags": frozenset(),
        "status": "published",
        "published_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "popularity": 0,
    }
    values.update(overrides)
    return Document(**values)


@pytest.fixture
def example_records():
    """Two-post corpus where a title match must beat a popular body match."""
    return [
        {
            "id": "1",
            "type": "post",
            "title": "Go Concurrency Patterns",
            "rawBody": "channels and goroutines",
            "tags": ["go"],
            "status": "published",
            "popularity": 10,
        },
        {
            "id": "2",
            "type": "post",
            "title": "Intro",
            "rawBody": "go is a language with concurrency",
            "tags": [],
            "status": "published",
            "popularity": 100,
        },
    ]


@pytest.fixture
def blog_records():
    """A small mixed corpus of posts and pages in every status."""
    return [
        {
            "id": "react-hooks",
            "type": "post",
            "slug": "react-hooks-in-depth",
            "title": "React Hooks in Depth",
            "rawBody": "# Hooks\n\nThe **useState** hook and the `useEffect` hook cover most React state needs.",
            "tags": [{"name": "React"}, {"name": "JavaScript"}],
            "status": "published",
            "publishedAt": "2024-03-01T10:00:00Z",
            "popularity": 40,
        },
        {
            "id": "react-testing",
            "type": "post",
            "title": "Testing React Components",
            "rawBody": "Render components, fire events and assert on the DOM. Hooks are tested through components.",
            "tags": ["React", "Testing"],
            "status": "published",
            "publishedAt": "2024-05-10T08:30:00Z",
            "popularity": 15,
        },
        {
            "id": "python-async",
            "type": "post",
            "title": "Async Python",
            "rawBody": "asyncio tasks, event loops and structured concurrency in Python.",
            "tags": ["Python"],
            "status": "published",
            "publishedAt": "2023-11-20T12:00:00Z",
            "popularity": 70,
        },
        {
            "id": "draft-react",
            "type": "post",
            "title": "React Server Components",
            "rawBody": "Work in progress notes about server components.",
            "tags": ["React"],
            "status": "draft",
            "popularity": 0,
        },
        {
            "id": "old-react",
            "type": "post",
            "title": "React Mixins",
            "rawBody": "Mixins were replaced by hooks.",
            "tags": ["React"],
            "status": "archived",
            "publishedAt": "2016-01-01T00:00:00Z",
            "popularity": 500,
        },
        {
            "id": "about",
            "type": "page",
            "slug": "about",
            "title": "About",
            "rawBody": "This blog covers React, Python and testing.",
            "tags": [],
            "status": "published",
            "publishedAt": "2022-01-01T00:00:00Z",
            "popularity": 5,
        },
    ]


@pytest.fixture
def content_source(blog_records):
    return InMemoryContentSource(blog_records)


@pytest.fixture
def document_factory():
    return make_document

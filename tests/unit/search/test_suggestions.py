"""Unit tests for the suggestion engine and popularity counter."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from content_search.domain.search import Suggestion
from content_search.search.index import IndexSnapshot, build_snapshot
from content_search.search.indexer import prepare_documents
from content_search.search.suggestions import PopularityCounter, SuggestionEngine, merge_suggestions


@pytest.fixture
def popularity():
    return PopularityCounter()


@pytest.fixture
def engine(popularity):
    return SuggestionEngine(popularity)


@pytest.fixture
def blog_snapshot(blog_records):
    return build_snapshot(prepare_documents(blog_records).documents, generation=1)


class TestPopularityCounter:
    def test_record_normalizes_terms(self, popularity):
        assert popularity.record("  React   HOOKS ") == "react hooks"
        popularity.record("react hooks")
        assert popularity.count("React Hooks") == 2

    def test_empty_terms_are_ignored(self, popularity):
        assert popularity.record("   ") is None
        assert popularity.record("?!") is None
        assert len(popularity) == 0

    def test_most_common_orders_by_count_then_text(self, popularity):
        for term in ["beta", "alpha", "beta", "gamma", "alpha", "beta"]:
            popularity.record(term)
        assert popularity.most_common() == [("beta", 3), ("alpha", 2), ("gamma", 1)]
        assert popularity.most_common(1) == [("beta", 3)]

    def test_with_prefix(self, popularity):
        for term in ["react", "react hooks", "react hooks", "python"]:
            popularity.record(term)
        assert popularity.with_prefix("react") == [("react hooks", 2), ("react", 1)]

    def test_capacity_prunes_least_frequent_oldest_first(self):
        counter = PopularityCounter(capacity=2)
        counter.record("kept")
        counter.record("kept")
        counter.record("old")
        counter.record("new")
        assert counter.most_common() == [("kept", 2), ("new", 1)]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            PopularityCounter(capacity=0)

    def test_concurrent_records_are_not_lost(self, popularity):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: popularity.record("busy term"), range(400)))
        assert popularity.count("busy term") == 400

    def test_clear(self, popularity):
        popularity.record("react")
        popularity.clear()
        assert popularity.most_common() == []


class TestSuggestionEngine:
    def test_history_wins_over_popular_and_counts_are_summed(self, engine, popularity):
        popularity.record("react hooks", increment=50)
        suggestions = engine.suggest(IndexSnapshot.empty(), "react", recent_history=["react hooks"], limit=10)
        assert suggestions == [Suggestion(text="react hooks", source="history", count=50)]

    def test_empty_prefix_returns_trending_terms(self, engine, popularity, blog_snapshot):
        popularity.record("python", increment=3)
        popularity.record("react", increment=5)
        suggestions = engine.suggest(blog_snapshot, "   ", recent_history=["react"], limit=10)
        assert suggestions == [
            Suggestion(text="react", source="popular", count=5),
            Suggestion(text="python", source="popular", count=3),
        ]

    def test_auto_completes_from_vocabulary(self, engine, blog_snapshot):
        suggestions = engine.suggest(blog_snapshot, "Rea", limit=10)
        assert [(item.text, item.source) for item in suggestions] == [("react", "auto")]
        assert suggestions[0].count == blog_snapshot.published_term_totals["react"]

    def test_auto_completes_last_word_of_multi_word_prefix(self, engine, blog_snapshot):
        suggestions = engine.suggest(blog_snapshot, "testing com", limit=10)
        assert [item.text for item in suggestions] == ["testing components"]

    def test_auto_candidates_ordered_by_frequency_then_text(self, engine, document_factory):
        snapshot = build_snapshot(
            [document_factory("a", body="stream stream stream strong struct"), document_factory("b", body="strong")],
            generation=1,
        )
        suggestions = engine.suggest(snapshot, "str", limit=10)
        assert [(item.text, item.count) for item in suggestions] == [
            ("stream", 3),
            ("strong", 2),
            ("struct", 1),
        ]

    def test_sources_are_merged_in_priority_order(self, engine, popularity, blog_snapshot):
        popularity.record("python async", increment=2)
        suggestions = engine.suggest(blog_snapshot, "py", recent_history=["pytest tips", "unrelated"], limit=10)
        assert [(item.text, item.source) for item in suggestions] == [
            ("pytest tips", "history"),
            ("python async", "popular"),
            ("python", "auto"),
        ]

    def test_limit_truncates(self, engine, blog_snapshot):
        assert len(engine.suggest(blog_snapshot, "t", limit=1)) == 1
        assert engine.suggest(blog_snapshot, "t", limit=0) == []

    def test_unknown_prefix_yields_nothing(self, engine, blog_snapshot):
        assert engine.suggest(blog_snapshot, "zzz", limit=10) == []

    @pytest.mark.parametrize("prefix", ["serv", "mix"])
    def test_auto_skips_words_only_found_in_unpublished_documents(self, engine, blog_snapshot, prefix):
        assert engine.suggest(blog_snapshot, prefix, limit=10) == []

    def test_draft_titles_do_not_leak_into_completions(self, engine, document_factory):
        snapshot = build_snapshot(
            [
                document_factory("live", title="Security checklist"),
                document_factory("wip", title="Secretproject launch", status="draft"),
            ],
            generation=1,
        )
        assert engine.suggest(snapshot, "secr", limit=10) == []
        assert [item.text for item in engine.suggest(snapshot, "sec", limit=10)] == ["security"]


def test_merge_suggestions_keeps_first_position_and_sums_counts():
    merged = merge_suggestions(
        [
            Suggestion(text="go", source="auto", count=4),
            Suggestion(text="go", source="popular", count=2),
            Suggestion(text="golang", source="auto", count=1),
            Suggestion(text="go", source="history"),
        ]
    )
    assert merged == [
        Suggestion(text="go", source="history", count=6),
        Suggestion(text="golang", source="auto", count=1),
    ]

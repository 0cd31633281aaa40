"""Unit tests for snapshot building and posting layout."""

from datetime import datetime, timezone

import pytest

from content_search.search.index import (
    BODY_WEIGHT,
    FIELD_WEIGHTS,
    TAGS_WEIGHT,
    TITLE_WEIGHT,
    IndexSnapshot,
    SnapshotWriter,
    build_snapshot,
)


BUILT_AT = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_field_weights_are_fixed():
    assert (TITLE_WEIGHT, TAGS_WEIGHT, BODY_WEIGHT) == (5, 3, 1)
    assert dict(FIELD_WEIGHTS) == {"title": 5, "tags": 3, "body": 1}
    with pytest.raises(TypeError):
        FIELD_WEIGHTS["title"] = 10  # type: ignore[index]


class TestSnapshotWriter:
    def test_postings_record_field_and_frequency(self, document_factory):
        doc = document_factory("a", title="Go Go Gadget", body="go fast", tags=frozenset({"Go"}))
        snapshot = build_snapshot([doc], generation=1, built_at=BUILT_AT)

        entries = snapshot.postings_for("go")
        assert [(entry.field, entry.term_frequency, entry.field_weight) for entry in entries] == [
            ("title", 2, 5),
            ("tags", 1, 3),
            ("body", 1, 1),
        ]
        assert [entry.term_frequency * entry.field_weight for entry in entries] == [10, 3, 1]
        assert snapshot.document_frequency["go"] == 1
        assert snapshot.term_totals["go"] == 4

    def test_document_frequency_counts_documents_not_fields(self, document_factory):
        docs = [
            document_factory("a", title="python", body="python python"),
            document_factory("b", body="python"),
            document_factory("c", body="rust"),
        ]
        snapshot = build_snapshot(docs, generation=1)
        assert snapshot.document_frequency["python"] == 2
        assert [entry.document_id for entry in snapshot.postings_for("python")] == ["a", "a", "b"]

    def test_postings_sorted_by_document_id(self, document_factory):
        docs = [document_factory(doc_id, body="shared") for doc_id in ("zeta", "alpha", "mid")]
        snapshot = build_snapshot(docs, generation=1)
        assert [entry.document_id for entry in snapshot.postings_for("shared")] == ["alpha", "mid", "zeta"]

    def test_stopwords_are_not_indexed(self, document_factory):
        snapshot = build_snapshot([document_factory("a", title="The Art of War")], generation=1)
        assert "the" not in snapshot.postings
        assert "of" not in snapshot.postings
        assert snapshot.vocabulary == ("art", "war")

    def test_duplicate_id_raises(self, document_factory):
        writer = SnapshotWriter()
        writer.add_document(document_factory("a", body="one"))
        with pytest.raises(ValueError, match="Duplicate document id"):
            writer.add_document(document_factory("a", body="two"))
        assert len(writer) == 1

    def test_build_records_generation_and_timestamp(self, document_factory):
        snapshot = build_snapshot([document_factory("a", body="text")], generation=7, built_at=BUILT_AT)
        assert snapshot.generation == 7
        assert snapshot.built_at == BUILT_AT
        assert snapshot.document_count == 1
        assert snapshot.get_document("a").body == "text"
        assert snapshot.get_document("missing") is None

    def test_snapshot_mappings_are_read_only(self, document_factory):
        snapshot = build_snapshot([document_factory("a", body="text")], generation=1)
        with pytest.raises(TypeError):
            snapshot.documents["b"] = snapshot.documents["a"]  # type: ignore[index]
        with pytest.raises(TypeError):
            snapshot.postings["new"] = ()  # type: ignore[index]


class TestIndexSnapshot:
    def test_empty_corpus_builds_empty_snapshot(self):
        snapshot = build_snapshot([], generation=3)
        assert snapshot.is_empty
        assert snapshot.generation == 3
        assert snapshot.vocabulary == ()
        assert snapshot.postings_for("anything") == ()

    def test_empty_factory(self):
        snapshot = IndexSnapshot.empty()
        assert snapshot.generation == 0
        assert snapshot.built_at is None
        assert snapshot.document_count == 0
        assert snapshot.idf("missing") == 0.0

    def test_idf_decreases_with_document_frequency(self, document_factory):
        docs = [
            document_factory("a", body="common rare"),
            document_factory("b", body="common"),
            document_factory("c", body="common"),
        ]
        snapshot = build_snapshot(docs, generation=1)
        assert snapshot.idf("rare") > snapshot.idf("common") > 0

    def test_tokens_with_prefix(self, document_factory):
        docs = [document_factory("a", body="react reactive reader rust"), document_factory("b", title="Reactor")]
        snapshot = build_snapshot(docs, generation=1)
        assert snapshot.tokens_with_prefix("rea") == ["react", "reactive", "reactor", "reader"]
        assert snapshot.tokens_with_prefix("react") == ["react", "reactive", "reactor"]
        assert snapshot.tokens_with_prefix("zzz") == []
        assert snapshot.tokens_with_prefix("") == []

    def test_published_vocabulary_excludes_unpublished_documents(self, document_factory):
        docs = [
            document_factory("a", title="Release notes", body="release"),
            document_factory("b", title="Release plan", status="draft"),
            document_factory("c", body="retired", status="archived"),
        ]
        snapshot = build_snapshot(docs, generation=1)
        assert snapshot.vocabulary == ("notes", "plan", "release", "retired")
        assert snapshot.published_vocabulary == ("notes", "release")
        assert snapshot.term_totals["release"] == 3
        assert snapshot.published_term_totals["release"] == 2
        assert "plan" not in snapshot.published_term_totals
        assert snapshot.tokens_with_prefix("re") == ["release", "retired"]
        assert snapshot.tokens_with_prefix("re", published_only=True) == ["release"]
        assert snapshot.tokens_with_prefix("pl", published_only=True) == []

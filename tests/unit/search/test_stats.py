"""Unit tests for scoring statistics."""

import math

import pytest

from content_search.search.stats import calculate_idf, count_terms, term_weight


@pytest.mark.parametrize(
    ("doc_freq", "total_docs", "expected"),
    [
        (0, 10, math.log(11.0)),
        (1, 2, math.log(2.0)),
        (9, 9, math.log(1.9)),
    ],
)
def test_calculate_idf(doc_freq, total_docs, expected):
    assert calculate_idf(doc_freq, total_docs) == pytest.approx(expected)


def test_idf_is_zero_for_empty_corpus():
    assert calculate_idf(0, 0) == 0.0


def test_idf_clamps_out_of_range_frequency():
    assert calculate_idf(50, 10) == calculate_idf(10, 10)
    assert calculate_idf(-3, 10) == calculate_idf(0, 10)


def test_idf_stays_positive_when_token_is_everywhere():
    assert calculate_idf(1000, 1000) > 0


def test_term_weight():
    assert term_weight(2, 5, 1.5) == pytest.approx(15.0)
    assert term_weight(0, 5, 1.5) == 0.0
    assert term_weight(3, 0, 1.5) == 0.0


def test_count_terms_preserves_first_seen_order():
    counts = count_terms(["b", "a", "b", "c", "a", "b"])
    assert counts == {"b": 3, "a": 2, "c": 1}
    assert list(counts) == ["b", "a", "c"]

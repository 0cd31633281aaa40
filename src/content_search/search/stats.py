"""Statistical helpers for field-weighted term scoring.

The functions here only see counts, never snapshots, so they can be unit
tested without building an index.
"""

from __future__ import annotations

from collections.abc import Iterable
import math


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return ``log(1 + N / (1 + df))``.

    The ``1 +`` in the denominator keeps unseen tokens finite and the outer
    ``1 +`` keeps the factor strictly positive, so a token present in every
    document still contributes a little.
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    return math.log(1.0 + total_docs / (1.0 + df))


def term_weight(term_frequency: int, field_weight: int, idf: float) -> float:
    """Contribution of one posting: ``tf x field weight x idf``."""

    if term_frequency <= 0 or field_weight <= 0:
        return 0.0
    return term_frequency * field_weight * idf


def count_terms(tokens: Iterable[str]) -> dict[str, int]:
    """Return term frequencies, preserving first-seen order."""

    counts: dict[str, int] = {}
    for token in tokens:
        counts[token] = counts.get(token, 0) + 1
    return counts

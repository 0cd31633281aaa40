"""
Search indexing, ranking and suggestion package.

This package provides the in-memory search core:
- analyzers: Tokenizers and filters (case folding, stopwords)
- normalizer: Markup stripping and token normalization
- index: Immutable inverted index snapshots with fixed field weights
- indexer: Raw content record preparation with per-record skips
- stats: IDF and term weight helpers
- ranking: Filtered, field-weighted scoring, ordering and pagination
- snippet: Highlight window extraction
- suggestions: History/popular/auto suggestion merging
"""

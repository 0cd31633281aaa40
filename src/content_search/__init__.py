"""In-memory content search: indexing, ranking, suggestions and rebuild orchestration."""

__version__ = "0.1.0"

"""Adapters layer - content source implementations.

The index never owns content; it is rebuilt from whatever an
``AbstractContentSource`` returns.
"""

from .content_source import (
    AbstractContentSource,
    HttpContentSource,
    InMemoryContentSource,
)


__all__ = [
    "AbstractContentSource",
    "HttpContentSource",
    "InMemoryContentSource",
]

"""Data models for the search engine."""

from .search import (
    CacheKey,
    ContentSummary,
    IndexPage,
    SearchRequest,
    SearchResult,
    SortKey,
)

__all__ = [
    "CacheKey",
    "ContentSummary",
    "IndexPage",
    "SearchRequest",
    "SearchResult",
    "SortKey",
]

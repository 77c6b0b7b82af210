"""Index adapters for the external full-text search index."""

from .base import IndexAdapter
from .catalog_adapter import InMemoryIndexAdapter, generate_catalog
from .meilisearch_adapter import MeilisearchIndexAdapter, build_filter_expressions

__all__ = [
    "IndexAdapter",
    "InMemoryIndexAdapter",
    "MeilisearchIndexAdapter",
    "build_filter_expressions",
    "generate_catalog",
]

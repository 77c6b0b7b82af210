"""
Base Index Adapter Interface

Thin boundary to the external full-text index. One call issues one query
and returns a page of items plus the total hit count.

Adapters classify failures:
- UpstreamUnavailable: network/service problems (transient)
- InvalidQuery: the index rejected the query (permanent)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from ....models.search import IndexPage, SortKey


class IndexAdapter(ABC):
    """
    Abstract base class for search index adapters.

    - MeilisearchIndexAdapter: hosted Meilisearch index over HTTP
    - InMemoryIndexAdapter: static document catalog (tests, local development)
    """

    @abstractmethod
    async def query(
        self,
        text: str,
        filters: Dict[str, Any],
        sort: SortKey,
        page: int,
        limit: int,
    ) -> IndexPage:
        """
        Execute one search against the index.

        Args:
            text: Free-text query as entered by the user
            filters: Canonical filter mapping (see normalize_filters)
            sort: Requested sort order
            page: 1-based page number
            limit: Page size

        Returns:
            IndexPage with items for the page and the total hit count

        Raises:
            UpstreamUnavailable: index unreachable or failing
            InvalidQuery: index rejected the query
        """

    async def close(self) -> None:
        """Release resources (HTTP clients, connections)."""

    def get_name(self) -> str:
        """
        Get the name of this adapter.

        Returns:
            Adapter name (e.g., "meilisearch", "inmemory")
        """
        return self.__class__.__name__.replace("IndexAdapter", "").lower()

"""
Search Transports

How the client query coordinator reaches the server-side search:
- LocalSearchTransport: in-process call into a SearchCacheCoordinator
- HttpSearchTransport: POST /api/v1/search over httpx, with error payloads
  mapped back onto the search error taxonomy
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ...errors import SearchError, UpstreamUnavailable, error_from_payload
from ...models.search import SearchRequest, SearchResult
from ..search.coordinator import SearchCacheCoordinator

logger = logging.getLogger(__name__)


class SearchTransport(ABC):
    """Sends one SearchRequest and returns its SearchResult."""

    @abstractmethod
    async def search(self, request: SearchRequest) -> SearchResult:
        """
        Raises:
            SearchError: ValidationError, UpstreamUnavailable or InvalidQuery
        """

    async def close(self) -> None:
        """Release transport resources."""


class LocalSearchTransport(SearchTransport):
    """Calls a SearchCacheCoordinator in the same process."""

    def __init__(self, coordinator: SearchCacheCoordinator):
        self.coordinator = coordinator

    async def search(self, request: SearchRequest) -> SearchResult:
        return await self.coordinator.search(request)


class HttpSearchTransport(SearchTransport):
    """
    Calls the search API over HTTP.

    The transport owns its httpx client unless one is injected.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def search(self, request: SearchRequest) -> SearchResult:
        payload = request.model_dump(mode="json")
        try:
            response = await self.client.post("/api/v1/search", json=payload)
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailable(f"Search API timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"Search API unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_from_response(response)

        return SearchResult.model_validate(response.json())

    @staticmethod
    def _error_from_response(response: httpx.Response) -> SearchError:
        try:
            body = response.json()
        except ValueError:
            body = None

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error_from_payload(error)

        logger.warning(f"Search API returned HTTP {response.status_code} without an error payload")
        return UpstreamUnavailable(
            f"Search API returned HTTP {response.status_code}",
            details={"status_code": response.status_code},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

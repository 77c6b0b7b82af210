"""
Search Cache Coordinator

Cache-aside orchestrator for search requests:
- Validates and normalizes the request into a CacheKey (fails fast)
- Serves fresh cache hits immediately
- On miss, runs exactly one index call per key (single-flight); concurrent
  callers for the same key await the same task and observe the same
  result or the same error
- Populates the cache before waiters resume; failures are never cached

The coordinator never retries. Retry policy belongs to the caller.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from redis.asyncio import Redis

from ...errors import SearchError, UpstreamUnavailable
from ...models.search import CacheKey, SearchResult
from ..cache.store import CacheStore, create_cache_store
from ..config.configuration_service import get_config_service
from .adapters.base import IndexAdapter
from .adapters.catalog_adapter import InMemoryIndexAdapter
from .adapters.meilisearch_adapter import MeilisearchIndexAdapter
from .normalizer import (
    DEFAULT_MAX_LIMIT,
    DEFAULT_MAX_QUERY_LENGTH,
    normalize,
    normalize_filters,
)

logger = logging.getLogger(__name__)

DEFAULT_TAGS = ("content", "search")


class SearchCacheCoordinator:
    """
    Server-side search entry point.

    Owns the in-flight table; the cache store and index adapter are injected
    and closed on shutdown().
    """

    def __init__(
        self,
        index: IndexAdapter,
        cache: CacheStore,
        *,
        ttl: float = 300,
        timeout: Optional[float] = 5.0,
        default_page_size: int = 20,
        max_page_size: int = DEFAULT_MAX_LIMIT,
        max_query_length: int = DEFAULT_MAX_QUERY_LENGTH,
        tags: Iterable[str] = DEFAULT_TAGS,
    ):
        """
        Initialize search cache coordinator.

        Args:
            index: Adapter for the external search index
            cache: Cache store for search results
            ttl: Lifetime of cached results in seconds
            timeout: Upper bound for one index call in seconds (None = unbounded)
            default_page_size: `limit` used when a caller omits it
            max_page_size: Largest accepted `limit`
            max_query_length: Longest accepted normalized query text
            tags: Tags stored with every cached result
        """
        self.index = index
        self.cache = cache
        self.ttl = ttl
        self.timeout = timeout
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.max_query_length = max_query_length
        self.tags: Tuple[str, ...] = tuple(tags)

        self._in_flight: Dict[CacheKey, asyncio.Task] = {}

        self.hits = 0
        self.misses = 0
        self.coalesced = 0
        self.upstream_calls = 0
        self.upstream_errors = 0

        logger.info(
            f"SearchCacheCoordinator initialized (index: {index.get_name()}, "
            f"cache: {cache.backend_name}, ttl: {ttl}s, timeout: {timeout}s)"
        )

    async def init(self) -> None:
        """Start background work owned by the cache store."""
        await self.cache.start()

    async def shutdown(self) -> None:
        """Cancel in-flight index calls and release the store and adapter."""
        pending = list(self._in_flight.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Cancelled {len(pending)} in-flight index calls on shutdown")
        self._in_flight.clear()

        await self.cache.close()
        await self.index.close()

    def cache_key(self, request) -> CacheKey:
        """Validated cache key for a request (raises ValidationError)."""
        return normalize(
            request,
            max_limit=self.max_page_size,
            max_query_length=self.max_query_length,
        )

    async def search(self, request) -> SearchResult:
        """
        Execute a search through the cache.

        Args:
            request: SearchRequest to execute

        Returns:
            SearchResult for the requested page (frozen)

        Raises:
            ValidationError: request is malformed (cache and index untouched)
            UpstreamUnavailable: index unreachable, failing or timed out
            InvalidQuery: index rejected the query
        """
        key = self.cache_key(request)

        cached = await self._cache_get(key)
        if cached is not None:
            self.hits += 1
            logger.debug(f"Cache hit: {key}")
            return cached

        # No await between the in-flight check and registration
        task = self._in_flight.get(key)
        if task is None:
            self.misses += 1
            logger.debug(f"Cache miss, querying index: {key}")
            task = asyncio.create_task(self._fetch(key, request))
            self._in_flight[key] = task
            task.add_done_callback(self._retrieve_exception)
        else:
            self.coalesced += 1
            logger.debug(f"Joining in-flight index call: {key}")

        # A cancelled caller must not cancel the call other waiters share
        return await asyncio.shield(task)

    async def _fetch(self, key: CacheKey, request) -> SearchResult:
        """Single upstream call for key. Populates the cache on success."""
        try:
            self.upstream_calls += 1
            page = await self._query_index(request)
            result = SearchResult.build(
                items=page.items,
                total=page.total,
                page=request.page,
                limit=request.limit,
            )
            await self._cache_set(key, result)
            return result
        finally:
            self._in_flight.pop(key, None)

    async def _query_index(self, request):
        try:
            return await asyncio.wait_for(
                self.index.query(
                    request.text,
                    normalize_filters(request.filters),
                    request.sort,
                    request.page,
                    request.limit,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            self.upstream_errors += 1
            logger.warning(f"Index call timed out after {self.timeout}s for '{request.text}'")
            raise UpstreamUnavailable(
                f"Search index did not respond within {self.timeout}s",
                details={"timeout_seconds": self.timeout},
            ) from exc
        except SearchError as exc:
            self.upstream_errors += 1
            logger.warning(f"Index call failed ({exc.code}): {exc.message}")
            raise
        except Exception as exc:
            self.upstream_errors += 1
            logger.error(f"Unexpected index adapter error: {exc}", exc_info=True)
            raise UpstreamUnavailable(f"Search index failed: {exc}") from exc

    @staticmethod
    def _retrieve_exception(task: asyncio.Task) -> None:
        # Mark the exception as retrieved when every waiter has gone away
        if not task.cancelled():
            task.exception()

    async def _cache_get(self, key: CacheKey) -> Optional[SearchResult]:
        try:
            entry = await self.cache.get(key)
            if entry is None:
                return None
            return SearchResult.model_validate(entry.value)
        except Exception as exc:
            logger.warning(f"Cache read failed for {key}, treating as miss: {exc}")
            return None

    async def _cache_set(self, key: CacheKey, result: SearchResult) -> None:
        try:
            await self.cache.set(key, result.model_dump(mode="json"), self.ttl, tags=self.tags)
        except Exception as exc:
            logger.warning(f"Cache write failed for {key}, result not cached: {exc}")

    async def invalidate(self, request) -> bool:
        """Drop the cached result for one request. Returns True if one was cached."""
        key = self.cache_key(request)
        removed = await self.cache.invalidate(key)
        logger.info(f"Invalidated cached search: {key} (removed: {removed})")
        return removed

    async def invalidate_tag(self, tag: str) -> int:
        return await self.cache.invalidate_tag(tag)

    async def flush_all(self) -> int:
        return await self.cache.flush_all()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def stats(self) -> Dict[str, Any]:
        """Coordinator counters for health/stats endpoints."""
        lookups = self.hits + self.misses + self.coalesced
        return {
            "cache_backend": self.cache.backend_name,
            "index_adapter": self.index.get_name(),
            "ttl_seconds": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "upstream_calls": self.upstream_calls,
            "upstream_errors": self.upstream_errors,
            "in_flight": self.in_flight,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
        }


def build_search_coordinator(
    settings,
    redis_client: Optional[Redis] = None,
    index: Optional[IndexAdapter] = None,
) -> SearchCacheCoordinator:
    """
    Build a coordinator from SearchSettings.

    The index adapter is Meilisearch when a URL is configured, otherwise the
    in-memory adapter over the bundled sample catalog.
    """
    if index is None:
        if settings.meilisearch_url:
            index = MeilisearchIndexAdapter(
                settings.meilisearch_url,
                api_key=settings.meilisearch_api_key,
                index_uid=settings.meilisearch_index,
                timeout=settings.index_timeout_seconds,
            )
        else:
            documents = get_config_service().get_sample_catalog()
            logger.warning(
                f"MEILISEARCH_URL not set; serving {len(documents)} documents from the sample catalog"
            )
            index = InMemoryIndexAdapter(documents)

    cache = create_cache_store(
        settings.cache_backend,
        redis_client,
        namespace=settings.cache_prefix,
        sweep_interval=settings.sweep_interval_seconds,
    )

    return SearchCacheCoordinator(
        index,
        cache,
        ttl=settings.cache_ttl_seconds,
        timeout=settings.index_timeout_seconds,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
        max_query_length=settings.max_query_length,
    )

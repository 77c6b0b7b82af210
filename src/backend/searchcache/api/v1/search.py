"""
Search API Endpoint
FastAPI router for cached, paginated content search

POST   /api/v1/search                       - Execute a search (cache-aside + single-flight)
GET    /api/v1/search/stats                 - Coordinator counters
POST   /api/v1/search/cache/invalidate      - Drop the cached page of one request (admin)
DELETE /api/v1/search/cache/tags/{tag}      - Drop every cached entry carrying a tag (admin)
DELETE /api/v1/search/cache                 - Flush the search cache (admin)
"""

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import AliasChoices, BaseModel, Field

from ...models.search import SearchRequest, SearchResult, SortKey
from ...services.search.coordinator import SearchCacheCoordinator
from ...utils.logging_context import search_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/search", tags=["search"])

API_KEY_HEADER = "X-API-Key"


# Dependency injection placeholders (overridden in main.py)
def get_search_coordinator_dep() -> SearchCacheCoordinator:
    """Dependency injection placeholder for the search coordinator - overridden in main.py"""
    raise RuntimeError("Search coordinator dependency not initialized")


def get_access_policy_dep() -> "AccessPolicy":
    """Dependency injection placeholder for the admin access policy - overridden in main.py"""
    raise RuntimeError("Access policy dependency not initialized")


class AccessPolicy:
    """Answers "is this caller allowed" for admin cache operations."""

    def is_allowed(self, request: Request) -> bool:
        raise NotImplementedError


class ApiKeyAccessPolicy(AccessPolicy):
    """
    Allows callers presenting one of the configured keys in X-API-Key.

    With no keys configured every caller is denied.
    """

    def __init__(self, api_keys: Iterable[str]):
        self.api_keys = frozenset(k for k in api_keys if k)

    def is_allowed(self, request: Request) -> bool:
        if not self.api_keys:
            return False
        return request.headers.get(API_KEY_HEADER) in self.api_keys


def require_admin(
    request: Request,
    policy: AccessPolicy = Depends(get_access_policy_dep),
) -> None:
    if not policy.is_allowed(request):
        logger.warning(f"Denied admin cache operation: {request.method} {request.url.path}")
        raise HTTPException(status_code=403, detail="Not allowed")


class SearchBody(BaseModel):
    """Request body for search and invalidate endpoints"""

    text: str = Field(default="", validation_alias=AliasChoices("text", "query"))
    filters: Dict[str, Any] = Field(default_factory=dict)
    sort: SortKey = SortKey.RELEVANCE
    page: int = 1
    limit: Optional[int] = None

    def to_request(self, default_limit: int) -> SearchRequest:
        return SearchRequest(
            text=self.text,
            filters=self.filters,
            sort=self.sort,
            page=self.page,
            limit=self.limit if self.limit is not None else default_limit,
        )


class InvalidateResponse(BaseModel):
    """Response model for cache invalidation endpoints"""

    invalidated: int
    key: Optional[str] = None
    tag: Optional[str] = None


@router.post("", response_model=SearchResult)
async def search(
    body: SearchBody,
    coordinator: SearchCacheCoordinator = Depends(get_search_coordinator_dep),
):
    """
    Execute a search

    Identical requests are idempotent: the first call for a cold key queries
    the index once (concurrent identical calls share it) and later calls within
    the TTL are served from cache.

    Example:
        POST /api/v1/search
        {"query": "Ted Bundy", "filters": {"platforms": ["Netflix"]}, "page": 1, "limit": 20}

        Response:
        {"items": [...], "total": 137, "page": 1, "limit": 20, "has_next": true, ...}
    """
    request = body.to_request(coordinator.default_page_size)
    with search_context(query=request.text, page=request.page, limit=request.limit):
        result = await coordinator.search(request)
        logger.info(
            f"Search '{request.text}' page {request.page}: "
            f"{len(result.items)} of {result.total} items"
        )
        return result


@router.get("/stats")
async def get_stats(
    coordinator: SearchCacheCoordinator = Depends(get_search_coordinator_dep),
) -> Dict[str, Any]:
    """Get coordinator counters (hits, misses, coalesced, upstream calls/errors)"""
    return coordinator.stats()


@router.post(
    "/cache/invalidate",
    response_model=InvalidateResponse,
    dependencies=[Depends(require_admin)],
)
async def invalidate_request(
    body: SearchBody,
    coordinator: SearchCacheCoordinator = Depends(get_search_coordinator_dep),
):
    """Drop the cached result for one request"""
    request = body.to_request(coordinator.default_page_size)
    removed = await coordinator.invalidate(request)
    return InvalidateResponse(invalidated=int(removed), key=coordinator.cache_key(request))


@router.delete(
    "/cache/tags/{tag}",
    response_model=InvalidateResponse,
    dependencies=[Depends(require_admin)],
)
async def invalidate_tag(
    tag: str,
    coordinator: SearchCacheCoordinator = Depends(get_search_coordinator_dep),
):
    """Drop every cached entry stored with tag"""
    count = await coordinator.invalidate_tag(tag)
    return InvalidateResponse(invalidated=count, tag=tag)


@router.delete(
    "/cache",
    response_model=InvalidateResponse,
    dependencies=[Depends(require_admin)],
)
async def flush_cache(
    coordinator: SearchCacheCoordinator = Depends(get_search_coordinator_dep),
):
    """Flush the whole search cache"""
    count = await coordinator.flush_all()
    logger.info(f"Search cache flushed ({count} entries)")
    return InvalidateResponse(invalidated=count)

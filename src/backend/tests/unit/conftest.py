"""
Unit test fixtures

Fixtures for unit tests that replace external collaborators (index,
transport, Redis) with controllable fakes.
"""

import asyncio
from typing import Dict, List, Optional

import pytest
from unittest.mock import AsyncMock
from redis.exceptions import ConnectionError as RedisConnectionError

from searchcache.models.search import ContentSummary, IndexPage, SearchRequest, SearchResult
from searchcache.services.client.transport import SearchTransport
from searchcache.services.search.adapters.base import IndexAdapter


class GatedIndexAdapter(IndexAdapter):
    """
    Index adapter whose calls block until released.

    Every call is recorded; `release()` lets all current and future calls
    complete, `fail_with` makes them raise instead.
    """

    def __init__(self, total: int = 137):
        self.total = total
        self.calls: List[Dict] = []
        self.started = asyncio.Event()
        self.gate = asyncio.Event()
        self.fail_with: Optional[Exception] = None

    def release(self) -> None:
        self.gate.set()

    async def query(self, text, filters, sort, page, limit) -> IndexPage:
        self.calls.append(
            {"text": text, "filters": filters, "sort": sort, "page": page, "limit": limit}
        )
        self.started.set()
        await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        start = (page - 1) * limit
        count = max(0, min(limit, self.total - start))
        items = [
            ContentSummary(id=f"{text}-{start + i + 1}", title=f"{text} #{start + i + 1}")
            for i in range(count)
        ]
        return IndexPage(items=items, total=self.total)


class ScriptedTransport(SearchTransport):
    """
    Transport whose responses are released per call.

    Each call gets its own asyncio.Future; tests resolve them in any order
    with `respond(i, ...)` / `fail(i, error)`.
    """

    def __init__(self):
        self.requests: List[SearchRequest] = []
        self.futures: List[asyncio.Future] = []

    async def search(self, request: SearchRequest) -> SearchResult:
        future = asyncio.get_running_loop().create_future()
        self.requests.append(request)
        self.futures.append(future)
        return await future

    def respond(self, index: int, total: int) -> SearchResult:
        request = self.requests[index]
        start = (request.page - 1) * request.limit
        count = max(0, min(request.limit, total - start))
        items = [
            ContentSummary(id=f"{request.text}-{start + i + 1}", title=request.text)
            for i in range(count)
        ]
        result = SearchResult.build(items, total, request.page, request.limit)
        self.futures[index].set_result(result)
        return result

    def fail(self, index: int, error: Exception) -> None:
        self.futures[index].set_exception(error)


class InstantTransport(SearchTransport):
    """Transport that answers immediately from a fixed total"""

    def __init__(self, total: int = 137):
        self.total = total
        self.requests: List[SearchRequest] = []

    async def search(self, request: SearchRequest) -> SearchResult:
        self.requests.append(request)
        start = (request.page - 1) * request.limit
        count = max(0, min(request.limit, self.total - start))
        items = [
            ContentSummary(id=f"{request.text}-{start + i + 1}", title=request.text)
            for i in range(count)
        ]
        return SearchResult.build(items, self.total, request.page, request.limit)


@pytest.fixture
def gated_index():
    return GatedIndexAdapter()


@pytest.fixture
def scripted_transport():
    return ScriptedTransport()


@pytest.fixture
def instant_transport():
    return InstantTransport()


@pytest.fixture
def failing_redis_client():
    """Redis client whose every call fails as if the server were down"""
    error = RedisConnectionError("Connection refused")
    client = AsyncMock()
    client.get = AsyncMock(side_effect=error)
    client.delete = AsyncMock(side_effect=error)
    client.zrange = AsyncMock(side_effect=error)
    client.scan = AsyncMock(side_effect=error)
    client.pipeline = lambda transaction=True: _FailingPipeline(error)
    return client


class _FailingPipeline:
    def __init__(self, error):
        self.error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def set(self, *args, **kwargs):
        return self

    def zadd(self, *args, **kwargs):
        return self

    def zremrangebyscore(self, *args, **kwargs):
        return self

    def zrem(self, *args, **kwargs):
        return self

    def delete(self, *args, **kwargs):
        return self

    async def execute(self):
        raise self.error

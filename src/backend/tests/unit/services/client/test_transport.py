"""
Unit tests for search transports
Tests HTTP error payload mapping and the in-process transport
"""

import json

import httpx
import pytest

from searchcache.errors import InvalidQuery, UpstreamUnavailable, ValidationError
from searchcache.models.search import ContentSummary, SearchRequest, SearchResult, SortKey
from searchcache.services.client.transport import HttpSearchTransport, LocalSearchTransport


def make_transport(handler):
    client = httpx.AsyncClient(
        base_url="http://api.test",
        transport=httpx.MockTransport(handler),
    )
    return HttpSearchTransport(client=client)


@pytest.mark.unit
class TestHttpSearchTransport:

    @pytest.mark.asyncio
    async def test_posts_request_and_parses_result(self):
        seen = {}
        result = SearchResult.build(
            [ContentSummary(id="c-1", title="The Ted Bundy Tapes")], total=137, page=2, limit=20
        )

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=result.model_dump(mode="json"))

        transport = make_transport(handler)
        request = SearchRequest(
            text="Ted Bundy", filters={"platforms": ["Netflix"]}, sort=SortKey.RATING_DESC, page=2
        )

        parsed = await transport.search(request)

        assert seen["path"] == "/api/v1/search"
        assert seen["body"] == {
            "text": "Ted Bundy",
            "filters": {"platforms": ["Netflix"]},
            "sort": "rating_desc",
            "page": 2,
            "limit": 20,
        }
        assert parsed == result

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, code, error_cls",
        [
            (400, "validation_error", ValidationError),
            (422, "invalid_query", InvalidQuery),
            (503, "upstream_unavailable", UpstreamUnavailable),
        ],
    )
    async def test_error_payloads_map_to_taxonomy(self, status, code, error_cls):
        def handler(request):
            return httpx.Response(
                status,
                json={"error": {"code": code, "message": "nope", "retryable": False}},
            )

        transport = make_transport(handler)

        with pytest.raises(error_cls) as exc_info:
            await transport.search(SearchRequest(text="x"))

        assert exc_info.value.message == "nope"

    @pytest.mark.asyncio
    async def test_error_without_payload_is_upstream_unavailable(self):
        transport = make_transport(lambda request: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await transport.search(SearchRequest(text="x"))

        assert exc_info.value.details == {"status_code": 502}

    @pytest.mark.asyncio
    async def test_connection_failure_is_upstream_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)

        with pytest.raises(UpstreamUnavailable):
            await transport.search(SearchRequest(text="x"))


@pytest.mark.unit
class TestLocalSearchTransport:

    @pytest.mark.asyncio
    async def test_delegates_to_coordinator(self, coordinator, catalog_index):
        transport = LocalSearchTransport(coordinator)

        result = await transport.search(SearchRequest(text="Ted Bundy"))
        await transport.search(SearchRequest(text="Ted Bundy"))

        assert result.total == 137
        assert catalog_index.query_count == 1

    @pytest.mark.asyncio
    async def test_validation_errors_propagate(self, coordinator):
        transport = LocalSearchTransport(coordinator)

        with pytest.raises(ValidationError):
            await transport.search(SearchRequest(text="x", limit=0))

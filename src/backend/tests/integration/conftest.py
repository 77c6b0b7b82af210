"""
Integration test fixtures

Fixtures for integration tests that exercise the FastAPI app, the cache
coordinator and the client coordinator together. The in-memory index and
cache keep them fast (< 5s) and independent of external services.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from searchcache.main import create_app
from searchcache.services.config.configuration_service import SearchSettings

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def search_settings():
    return SearchSettings(
        debounce_ms=10,
        cache_ttl_seconds=60,
        max_page_size=50,
        index_timeout_seconds=1.0,
        admin_api_keys=[ADMIN_KEY],
    )


@pytest.fixture
def search_app(coordinator, search_settings):
    """FastAPI app wired to the shared coordinator fixture"""
    return create_app(coordinator=coordinator, settings=search_settings)


@pytest_asyncio.fixture
async def api_client(search_app):
    """
    HTTP client for API integration testing

    Usage:
        async def test_health_endpoint(api_client):
            response = await api_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=search_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def admin_headers():
    return {"X-API-Key": ADMIN_KEY}

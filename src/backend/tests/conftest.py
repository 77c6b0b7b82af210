"""
Pytest configuration and shared fixtures
Provides common test fixtures for all test modules
"""

import json
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

# Add backend directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fakeredis import aioredis as fakeredis_aioredis

from searchcache.services.cache.store import InMemoryCacheStore
from searchcache.services.config.configuration_service import ConfigurationService
from searchcache.services.search.adapters.catalog_adapter import (
    InMemoryIndexAdapter,
    generate_catalog,
)
from searchcache.services.search.coordinator import SearchCacheCoordinator


class FakeClock:
    """Manually advanced clock for TTL tests"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def test_config_dir():
    """
    Create temporary config directory with test configurations
    Session-scoped fixture used across all tests
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        config_dir = Path(tmpdir)

        configs = {
            "search_config.json": {
                "version": "1.0-test",
                "search": {
                    "debounce_ms": 10,
                    "min_query_length": 2,
                    "cache_ttl_seconds": 60,
                    "default_page_size": 20,
                    "max_page_size": 50,
                    "max_query_length": 100,
                    "index_timeout_seconds": 1.0,
                    "cache_backend": "memory",
                    "cache_prefix": "test",
                },
            },
            "sample_catalog.json": {
                "version": "1.0-test",
                "documents": [
                    {"id": "doc-1", "title": "Ted Bundy Tapes", "releaseYear": 2019},
                    {"id": "doc-2", "title": "Making a Murderer", "releaseYear": 2015},
                ],
            },
        }

        for filename, content in configs.items():
            (config_dir / filename).write_text(
                json.dumps(content, indent=2, ensure_ascii=False),
                encoding="utf-8"
            )

        yield config_dir


@pytest.fixture
def config_service(test_config_dir):
    """
    Create ConfigurationService with test config directory
    Function-scoped fixture, new instance per test
    """
    service = ConfigurationService(str(test_config_dir))
    service.load_config.cache_clear()
    return service


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def bundy_catalog():
    """137 documents matching "Ted Bundy" plus unrelated filler"""
    return generate_catalog("Ted Bundy", 137) + generate_catalog(
        "Zodiac", 12, id_prefix="zodiac"
    )


@pytest.fixture
def catalog_index(bundy_catalog):
    return InMemoryIndexAdapter(bundy_catalog)


@pytest.fixture
def coordinator(catalog_index, memory_store):
    return SearchCacheCoordinator(catalog_index, memory_store, ttl=60, timeout=1.0)


@pytest_asyncio.fixture
async def fake_redis_client():
    client = fakeredis_aioredis.FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


# Pytest markers
def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
    config.addinivalue_line("markers", "api: HTTP API tests")


# Auto-use fixtures
@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Reset singleton instances before each test
    Ensures test isolation
    """
    import searchcache.services.config.configuration_service as config_module
    config_module._config_service = None

    yield

    config_module._config_service = None

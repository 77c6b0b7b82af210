"""
Unit tests for the search logging context helpers
"""

import pytest
from structlog.contextvars import clear_contextvars, get_contextvars

from searchcache.utils.logging_context import bind_search_context, search_context


@pytest.fixture(autouse=True)
def clean_context():
    clear_contextvars()
    yield
    clear_contextvars()


@pytest.mark.unit
class TestLoggingContext:

    def test_bind_skips_unset_fields(self):
        bind_search_context(query="ted bundy", page=2, cache_key="", source="api")

        assert get_contextvars() == {"query": "ted bundy", "page": 2, "source": "api"}

    def test_search_context_is_removed_on_exit(self):
        bind_search_context(correlation="abc")

        with search_context(query="zodiac", limit=20):
            assert get_contextvars()["query"] == "zodiac"

        assert get_contextvars() == {"correlation": "abc"}

    def test_search_context_is_removed_when_body_raises(self):
        with pytest.raises(RuntimeError):
            with search_context(query="zodiac"):
                raise RuntimeError("boom")

        assert "query" not in get_contextvars()

"""
Logging Context Management Utilities

Provides helpers for adding and managing context in structured logs.
Context automatically appears in all log statements within the scope.
"""

from contextlib import contextmanager
from typing import Optional

from structlog.contextvars import bind_contextvars, unbind_contextvars


def bind_search_context(
    query: Optional[str] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    cache_key: Optional[str] = None,
    **kwargs
):
    """
    Bind search-related context to all logs.

    Args:
        query: Raw query text
        page: Requested page
        limit: Requested page size
        cache_key: Normalized cache key
        **kwargs: Additional context key-value pairs

    Example:
        ```python
        bind_search_context(query="ted bundy", page=2, limit=20)
        logger.info("search_started")  # Includes query, page, limit
        ```
    """
    context = {}

    if query is not None:
        context["query"] = query
    if page is not None:
        context["page"] = page
    if limit is not None:
        context["limit"] = limit
    if cache_key:
        context["cache_key"] = cache_key

    context.update(kwargs)
    bind_contextvars(**context)


@contextmanager
def search_context(**context_vars):
    """
    Context manager for temporary search logging context.

    Context is added on enter and removed on exit.

    Example:
        ```python
        with search_context(query=request.text, page=request.page):
            result = await coordinator.search(request)
        ```
    """
    bind_search_context(**context_vars)

    try:
        yield
    finally:
        unbind_contextvars(*context_vars.keys())

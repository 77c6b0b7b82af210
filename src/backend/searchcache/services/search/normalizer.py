"""
Filter Normalizer

Canonicalizes a SearchRequest into a deterministic, order-independent cache key.

- Free text is trimmed, lowercased and whitespace-collapsed
- Filter entries are sorted by key; list values are deduplicated and sorted
  (filter semantics are set-like)
- Absent/empty filter values are dropped so "no filter" == "cleared filter"
- Keys and values are JSON-encoded so separators inside values cannot collide
"""

import json
from typing import Any, Dict

from ...errors import ValidationError
from ...models.search import CacheKey, SearchRequest

KEY_PREFIX = "search:v1"

DEFAULT_MAX_LIMIT = 100
DEFAULT_MAX_QUERY_LENGTH = 100


def normalize_text(text: str) -> str:
    """Trim, lowercase and collapse internal whitespace."""
    return " ".join((text or "").split()).lower()


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _canonical_value(value: Any) -> Any:
    """Canonical form of a single filter value (recursive for nested values)."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        unique: Dict[str, Any] = {}
        for element in value:
            if _is_empty(element):
                continue
            canonical = _canonical_value(element)
            unique[json.dumps(canonical, sort_keys=True)] = canonical
        return [unique[k] for k in sorted(unique)]
    if isinstance(value, dict):
        return normalize_filters(value)
    return value


def normalize_filters(filters: Dict[str, Any]) -> Dict[str, Any]:
    """
    Canonical filter mapping: sorted keys, empty values dropped,
    set-like values deduplicated and sorted.
    """
    canonical: Dict[str, Any] = {}
    for key in sorted(filters or {}):
        value = filters[key]
        if _is_empty(value):
            continue
        value = _canonical_value(value)
        if _is_empty(value):
            continue
        canonical[key] = value
    return canonical


def validate_request(
    request: SearchRequest,
    *,
    max_limit: int = DEFAULT_MAX_LIMIT,
    max_query_length: int = DEFAULT_MAX_QUERY_LENGTH,
) -> None:
    """
    Raises:
        ValidationError: page < 1, limit outside [1, max_limit] or query too long
    """
    if request.page < 1:
        raise ValidationError(
            f"page must be >= 1, got {request.page}", details={"field": "page"}
        )
    if request.limit < 1 or request.limit > max_limit:
        raise ValidationError(
            f"limit must be between 1 and {max_limit}, got {request.limit}",
            details={"field": "limit"},
        )
    if len(normalize_text(request.text)) > max_query_length:
        raise ValidationError(
            f"query must be at most {max_query_length} characters",
            details={"field": "text"},
        )


def normalize(
    request: SearchRequest,
    *,
    max_limit: int = DEFAULT_MAX_LIMIT,
    max_query_length: int = DEFAULT_MAX_QUERY_LENGTH,
) -> CacheKey:
    """
    Derive the cache key for a request.

    Example:
        >>> normalize(SearchRequest(text="  Ted   BUNDY ", filters={"platforms": ["b", "a", "a"]}))
        'search:v1:ted bundy|relevance|1|20|f:"platforms"=["a","b"]'
    """
    validate_request(request, max_limit=max_limit, max_query_length=max_query_length)

    filters = normalize_filters(request.filters)
    encoded_filters = ",".join(
        f"{json.dumps(key)}={json.dumps(value, sort_keys=True, separators=(',', ':'))}"
        for key, value in filters.items()
    )
    # text must not contain the field separator
    text = json.dumps(normalize_text(request.text))[1:-1].replace("|", "\\u007c")

    return (
        f"{KEY_PREFIX}:{text}|{request.sort.value}|{request.page}|{request.limit}"
        f"|f:{encoded_filters}"
    )

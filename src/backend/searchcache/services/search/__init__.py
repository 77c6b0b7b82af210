"""Server-side search: normalizer, index adapters and the cache coordinator."""

from .coordinator import SearchCacheCoordinator, build_search_coordinator
from .normalizer import normalize, normalize_filters, normalize_text, validate_request

__all__ = [
    "SearchCacheCoordinator",
    "build_search_coordinator",
    "normalize",
    "normalize_filters",
    "normalize_text",
    "validate_request",
]

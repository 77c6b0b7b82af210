"""
Search Error Taxonomy

Errors surfaced by the search engine to its callers:
- ValidationError: malformed request (page/limit out of range, query too long)
- UpstreamUnavailable: index or backend unreachable / timed out (retryable)
- InvalidQuery: index rejected the query semantics (not retryable)
"""

from typing import Any, Dict, Optional


class SearchError(Exception):
    """Base class for all search engine errors."""

    code: str = "search_error"
    retryable: bool = False
    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error for API responses."""
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SearchError):
    """Request is malformed; never cached, never retried."""

    code = "validation_error"
    status_code = 400


class UpstreamUnavailable(SearchError):
    """Index or backend unreachable or timed out; caller may retry."""

    code = "upstream_unavailable"
    retryable = True
    status_code = 503


class InvalidQuery(SearchError):
    """Index rejected the query semantics; not retryable."""

    code = "invalid_query"
    status_code = 422


_ERRORS_BY_CODE = {
    cls.code: cls for cls in (ValidationError, UpstreamUnavailable, InvalidQuery)
}


def error_from_payload(payload: Dict[str, Any]) -> SearchError:
    """
    Rebuild a SearchError from an API error payload.

    Unknown codes are treated as UpstreamUnavailable since the server
    could not answer the query.
    """
    code = payload.get("code", "")
    message = payload.get("message", "Search failed")
    error_cls = _ERRORS_BY_CODE.get(code, UpstreamUnavailable)
    return error_cls(message, details=payload.get("details"))

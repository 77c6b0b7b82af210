"""
Search Data Models

Request/result models shared by the server-side cache coordinator,
the index adapters and the client query coordinator.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator

CacheKey = str


def _copied_filters(filters: Dict[str, Any]) -> Dict[str, Any]:
    copied = {}
    for key, value in filters.items():
        if isinstance(value, list):
            value = list(value)
        elif isinstance(value, dict):
            value = dict(value)
        copied[key] = value
    return copied


class SortKey(str, Enum):
    """Sort orders understood by the content index."""

    RELEVANCE = "relevance"
    RATING_DESC = "rating_desc"
    RATING_ASC = "rating_asc"
    RELEASE_DATE_DESC = "release_date_desc"
    RELEASE_DATE_ASC = "release_date_asc"
    POPULARITY_DESC = "popularity_desc"
    TITLE_ASC = "title_asc"


class SearchRequest(BaseModel):
    """
    One attempted search call.

    Immutable once constructed: fields cannot be reassigned and filters are
    copied on the way in, so a request never shares a mutable mapping with
    its caller or with the pages derived from it. Range checks on page/limit
    are done by the normalizer so that every entry point rejects bad
    requests the same way.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str = Field(default="", validation_alias=AliasChoices("text", "query"))
    filters: Dict[str, Any] = Field(default_factory=dict)
    sort: SortKey = SortKey.RELEVANCE
    page: int = 1
    limit: int = 20

    @field_validator("filters", mode="after")
    @classmethod
    def copy_filters(cls, filters: Dict[str, Any]) -> Dict[str, Any]:
        return _copied_filters(filters)

    def for_page(self, page: int) -> "SearchRequest":
        """Same logical search, different page."""
        return self.model_copy(update={"page": page, "filters": _copied_filters(self.filters)})


class ContentSummary(BaseModel):
    """Single content hit returned by the index."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content_type: Optional[str] = None
    release_year: Optional[int] = None
    rating: Optional[float] = None
    poster_url: Optional[str] = None
    platforms: Tuple[str, ...] = ()
    extra: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ContentSummary":
        """
        Build a summary from a raw index document.

        Index documents use camelCase keys (contentType, releaseYear, tmdbRating,
        posterUrl); anything not mapped is kept under `extra`.
        """
        known = {
            "id", "title", "contentType", "releaseYear", "tmdbRating",
            "posterUrl", "platforms",
        }
        platforms = document.get("platforms") or []
        platform_names = tuple(
            p.get("name", "") if isinstance(p, dict) else str(p) for p in platforms
        )
        return cls(
            id=str(document["id"]),
            title=document.get("title", ""),
            content_type=document.get("contentType"),
            release_year=document.get("releaseYear"),
            rating=document.get("tmdbRating"),
            poster_url=document.get("posterUrl"),
            platforms=platform_names,
            extra={k: v for k, v in document.items() if k not in known},
        )


class SearchResult(BaseModel):
    """
    One page of search results.

    has_next = page * limit < total
    """

    model_config = ConfigDict(frozen=True)

    items: Tuple[ContentSummary, ...] = ()
    total: int = Field(default=0, ge=0)
    page: int = 1
    limit: int = 20
    has_next: bool = False

    @classmethod
    def build(
        cls,
        items: List[ContentSummary],
        total: int,
        page: int,
        limit: int,
    ) -> "SearchResult":
        return cls(
            items=tuple(items),
            total=total,
            page=page,
            limit=limit,
            has_next=page * limit < total,
        )

    @computed_field
    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @computed_field
    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)


class IndexPage(BaseModel):
    """Raw page returned by an index adapter."""

    items: List[ContentSummary] = Field(default_factory=list)
    total: int = 0

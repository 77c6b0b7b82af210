"""
In-Memory Catalog Index Adapter

Serves queries from a static list of index documents. Used for local
development and tests where a Meilisearch instance isn't available.

Matching: every whitespace-separated query term must appear in the
document's title, description or caseName (case-insensitive).
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ....models.search import ContentSummary, IndexPage, SortKey
from ..normalizer import normalize_text
from .base import IndexAdapter

logger = logging.getLogger(__name__)

SEARCHABLE_FIELDS = ("title", "description", "caseName")

RANGE_FIELDS = {
    "year": "releaseYear",
    "rating": "tmdbRating",
}

# (document field, descending)
SORT_FIELDS: Dict[SortKey, Tuple[str, bool]] = {
    SortKey.RATING_DESC: ("tmdbRating", True),
    SortKey.RATING_ASC: ("tmdbRating", False),
    SortKey.RELEASE_DATE_DESC: ("releaseYear", True),
    SortKey.RELEASE_DATE_ASC: ("releaseYear", False),
    SortKey.POPULARITY_DESC: ("userRatingCount", True),
    SortKey.TITLE_ASC: ("title", False),
}


def _field_values(document: Dict[str, Any], field: str) -> List[Any]:
    """Document values for a filter field, flattening platform objects to names."""
    value = document.get(field)
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        return [value]
    return [v.get("name") if isinstance(v, dict) else v for v in value]


class InMemoryIndexAdapter(IndexAdapter):
    """
    Index adapter over an in-process document catalog.

    Args:
        documents: Index documents (camelCase keys, must include "id")
        latency: Optional artificial delay per query, in seconds
    """

    def __init__(self, documents: Sequence[Dict[str, Any]], latency: float = 0.0):
        self.documents = list(documents)
        self.latency = latency
        self.query_count = 0

    def _matches_text(self, document: Dict[str, Any], terms: List[str]) -> bool:
        if not terms:
            return True
        haystack = " ".join(str(document.get(f) or "") for f in SEARCHABLE_FIELDS).lower()
        return all(term in haystack for term in terms)

    def _matches_filters(self, document: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        for key, expected in filters.items():
            if key.endswith("From") and len(key) > 4:
                field = RANGE_FIELDS.get(key[:-4], key[:-4])
                actual = document.get(field)
                if actual is None or actual < expected:
                    return False
            elif key.endswith("To") and len(key) > 2:
                field = RANGE_FIELDS.get(key[:-2], key[:-2])
                actual = document.get(field)
                if actual is None or actual > expected:
                    return False
            else:
                actual_values = _field_values(document, key)
                wanted = expected if isinstance(expected, (list, tuple)) else [expected]
                if not any(v in actual_values for v in wanted):
                    return False
        return True

    def _sorted(self, documents: List[Dict[str, Any]], sort: SortKey) -> List[Dict[str, Any]]:
        if sort not in SORT_FIELDS:
            return documents
        field, descending = SORT_FIELDS[sort]
        present = [d for d in documents if d.get(field) is not None]
        missing = [d for d in documents if d.get(field) is None]
        present.sort(key=lambda d: d[field], reverse=descending)
        return present + missing

    async def query(
        self,
        text: str,
        filters: Dict[str, Any],
        sort: SortKey,
        page: int,
        limit: int,
    ) -> IndexPage:
        self.query_count += 1
        if self.latency:
            await asyncio.sleep(self.latency)

        terms = normalize_text(text).split()
        matched = [
            d for d in self.documents
            if self._matches_text(d, terms) and self._matches_filters(d, filters)
        ]
        matched = self._sorted(matched, sort)

        offset = (page - 1) * limit
        page_documents = matched[offset:offset + limit]
        logger.debug(
            "Catalog query '%s' matched %d documents (page %d, limit %d)",
            text, len(matched), page, limit,
        )
        return IndexPage(
            items=[ContentSummary.from_document(d) for d in page_documents],
            total=len(matched),
        )


def generate_catalog(
    title: str,
    count: int,
    *,
    id_prefix: str = "content",
    extra: Optional[Callable[[int], Dict[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    Build a synthetic catalog of `count` documents whose titles contain `title`.

    Example:
        >>> docs = generate_catalog("Ted Bundy", 137)
        >>> docs[0]["title"]
        'Ted Bundy: Part 1'
    """
    documents = []
    for i in range(1, count + 1):
        document = {
            "id": f"{id_prefix}-{i:04d}",
            "title": f"{title}: Part {i}",
            "description": f"Documentary chapter {i} about {title}",
            "contentType": "DOCUMENTARY" if i % 2 else "DOCUSERIES",
            "releaseYear": 1990 + (i % 30),
            "tmdbRating": round(5 + (i % 50) / 10, 1),
            "userRatingCount": i * 10,
            "platforms": [{"name": "Netflix"}] if i % 3 else [{"name": "Hulu"}],
        }
        if extra:
            document.update(extra(i))
        documents.append(document)
    return documents

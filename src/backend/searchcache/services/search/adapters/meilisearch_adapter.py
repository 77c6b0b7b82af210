"""
Meilisearch Index Adapter

Queries the hosted content index over its REST API:
    POST /indexes/{uid}/search  {q, page, hitsPerPage, filter, sort}

Page-based requests make the index report an exact totalHits.

Filter mapping:
- list values        -> field IN ["a", "b"]
- <name>From / <name>To -> range bounds on the mapped field (yearFrom -> releaseYear >= n)
- scalars            -> field = value
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ....errors import InvalidQuery, UpstreamUnavailable
from ....models.search import ContentSummary, IndexPage, SortKey
from .base import IndexAdapter

logger = logging.getLogger(__name__)

# Request filter names that differ from index attribute names
FIELD_ALIASES = {
    "platforms": "platforms.name",
    "genres": "trueCrimeGenres",
    "year": "releaseYear",
    "rating": "tmdbRating",
}

SORT_EXPRESSIONS: Dict[SortKey, List[str]] = {
    SortKey.RELEVANCE: [],
    SortKey.RATING_DESC: ["tmdbRating:desc"],
    SortKey.RATING_ASC: ["tmdbRating:asc"],
    SortKey.RELEASE_DATE_DESC: ["releaseYear:desc"],
    SortKey.RELEASE_DATE_ASC: ["releaseYear:asc"],
    SortKey.POPULARITY_DESC: ["userRatingCount:desc"],
    SortKey.TITLE_ASC: ["title:asc"],
}

# 4xx statuses that are about the service, not about the query
_SERVICE_SIDE_STATUSES = {401, 403, 408, 429}


def _literal(value: Any) -> str:
    """Render a filter literal in Meilisearch syntax."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    # The filter grammar only unescapes \\ and \"; everything else stays literal
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def build_filter_expressions(filters: Dict[str, Any]) -> List[str]:
    """
    Translate canonical filters into Meilisearch filter expressions
    (combined with AND by the index).
    """
    expressions: List[str] = []
    for key, value in filters.items():
        if key.endswith("From") and len(key) > 4:
            field = FIELD_ALIASES.get(key[:-4], key[:-4])
            expressions.append(f"{field} >= {_literal(value)}")
        elif key.endswith("To") and len(key) > 2:
            field = FIELD_ALIASES.get(key[:-2], key[:-2])
            expressions.append(f"{field} <= {_literal(value)}")
        elif isinstance(value, (list, tuple)):
            field = FIELD_ALIASES.get(key, key)
            values = ", ".join(_literal(v) for v in value)
            expressions.append(f"{field} IN [{values}]")
        else:
            field = FIELD_ALIASES.get(key, key)
            expressions.append(f"{field} = {_literal(value)}")
    return expressions


class MeilisearchIndexAdapter(IndexAdapter):
    """
    Index adapter for a Meilisearch content index.

    The adapter owns its httpx client unless one is injected.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        index_uid: str = "content",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.index_uid = index_uid
        self._owns_client = client is None

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
        )
        logger.info("MeilisearchIndexAdapter initialized (url: %s, index: %s)", self.base_url, index_uid)

    async def query(
        self,
        text: str,
        filters: Dict[str, Any],
        sort: SortKey,
        page: int,
        limit: int,
    ) -> IndexPage:
        payload: Dict[str, Any] = {
            "q": text,
            "page": page,
            "hitsPerPage": limit,
        }
        expressions = build_filter_expressions(filters)
        if expressions:
            payload["filter"] = expressions
        sort_expressions = SORT_EXPRESSIONS.get(sort, [])
        if sort_expressions:
            payload["sort"] = sort_expressions

        try:
            response = await self.client.post(f"/indexes/{self.index_uid}/search", json=payload)
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailable(f"Search index timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"Search index unreachable: {exc}") from exc

        if response.status_code >= 500 or response.status_code in _SERVICE_SIDE_STATUSES:
            raise UpstreamUnavailable(
                f"Search index returned HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            error = self._error_body(response)
            raise InvalidQuery(
                error.get("message", f"Search index rejected query (HTTP {response.status_code})"),
                details={"status_code": response.status_code, "index_code": error.get("code")},
            )

        data = response.json()
        items = []
        for hit in data.get("hits", []):
            if "id" not in hit:
                logger.warning("Skipping index hit without id: %s", hit.get("title"))
                continue
            items.append(ContentSummary.from_document(hit))

        total = data.get("totalHits", data.get("estimatedTotalHits", len(items)))
        return IndexPage(items=items, total=total)

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

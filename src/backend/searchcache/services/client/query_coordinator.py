"""
Client Query Coordinator

Owns one logical search interaction on the client side:
- Debounces text/filter edits (only the latest edit in the window fires)
- Skips the network entirely for text shorter than the minimum length
- Tags every issued request with a monotonically increasing id and applies
  only the response of the active request (superseded responses are dropped)
- Accumulates pages in order on load_more(); failures keep earlier pages

Phases: IDLE -> DEBOUNCING -> FETCHING -> {SETTLED, FAILED}. SETTLED and
FAILED are resting phases that accept the next edit or load_more() like IDLE.

All methods must be called from the event loop that runs the transport.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ...errors import SearchError, UpstreamUnavailable
from ...models.search import ContentSummary, SearchRequest, SearchResult, SortKey
from .transport import SearchTransport

logger = logging.getLogger(__name__)

MAX_RECENT_SEARCHES = 10

TRENDING_SEARCHES = (
    "Ted Bundy",
    "Jeffrey Dahmer",
    "Serial Killers",
    "Netflix Documentaries",
    "Missing Persons Cases",
)


class ClientPhase(str, Enum):
    """Client search session phase"""
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass(frozen=True)
class ClientSearchState:
    """Immutable view of the session handed to listeners and callers"""
    phase: ClientPhase
    query: str
    filters: Dict[str, Any]
    sort: SortKey
    items: Tuple[ContentSummary, ...]
    current_page: int
    is_loading: bool
    is_loading_more: bool
    has_next_page: bool
    error: Optional[SearchError] = None
    pagination: Optional[Dict[str, Any]] = None
    recent_searches: Tuple[str, ...] = field(default_factory=tuple)


Listener = Callable[[ClientSearchState], None]


class ClientQueryCoordinator:
    """
    Client-side search session over a SearchTransport.

    Example:
        ```python
        client = ClientQueryCoordinator(LocalSearchTransport(coordinator))
        client.set_query("Ted Bundy")
        await client.wait_until_settled()
        client.load_more()
        await client.wait_until_settled()
        len(client.items)  # 40
        ```
    """

    def __init__(
        self,
        transport: SearchTransport,
        *,
        debounce_ms: int = 300,
        min_query_length: int = 2,
        page_size: int = 20,
        default_filters: Optional[Dict[str, Any]] = None,
        sort: SortKey = SortKey.RELEVANCE,
        max_recent_searches: int = MAX_RECENT_SEARCHES,
    ):
        self.transport = transport
        self.debounce_ms = debounce_ms
        self.min_query_length = min_query_length
        self.page_size = page_size
        self.default_filters: Dict[str, Any] = dict(default_filters or {})
        self.max_recent_searches = max_recent_searches

        self._query = ""
        self._filters: Dict[str, Any] = dict(self.default_filters)
        self._sort = sort

        # Session (reset on every edit)
        self._session_request: Optional[SearchRequest] = None
        self._items: List[ContentSummary] = []
        self._result: Optional[SearchResult] = None
        self._current_page = 0

        self._phase = ClientPhase.IDLE
        self._error: Optional[SearchError] = None
        self._is_loading = False
        self._is_loading_more = False
        self._failed_request: Optional[Tuple[SearchRequest, bool]] = None

        self._request_seq = 0
        self._active_request_id: Optional[int] = None
        self._debounce_task: Optional[asyncio.Task] = None
        self._fetch_tasks: Set[asyncio.Task] = set()

        self._recent_searches: List[str] = []
        self._listeners: List[Listener] = []

        self.discarded_responses = 0

    @classmethod
    def from_settings(cls, transport: SearchTransport, settings, **kwargs) -> "ClientQueryCoordinator":
        """Build a client using SearchSettings (debounce, min length, page size)."""
        return cls(
            transport,
            debounce_ms=settings.debounce_ms,
            min_query_length=settings.min_query_length,
            page_size=settings.default_page_size,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def phase(self) -> ClientPhase:
        return self._phase

    @property
    def query(self) -> str:
        return self._query

    @property
    def filters(self) -> Dict[str, Any]:
        return dict(self._filters)

    @property
    def sort(self) -> SortKey:
        return self._sort

    @property
    def items(self) -> List[ContentSummary]:
        return list(self._items)

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_loading_more(self) -> bool:
        return self._is_loading_more

    @property
    def error(self) -> Optional[SearchError]:
        return self._error

    @property
    def has_next_page(self) -> bool:
        return bool(self._result and self._result.has_next)

    @property
    def pagination(self) -> Optional[Dict[str, Any]]:
        if self._result is None:
            return None
        return {
            "page": self._result.page,
            "limit": self._result.limit,
            "total": self._result.total,
            "pages": self._result.pages,
            "has_next": self._result.has_next,
            "has_prev": self._result.has_prev,
        }

    @property
    def last_issued_request_id(self) -> int:
        return self._request_seq

    @property
    def recent_searches(self) -> List[str]:
        return list(self._recent_searches)

    def snapshot(self) -> ClientSearchState:
        return ClientSearchState(
            phase=self._phase,
            query=self._query,
            filters=dict(self._filters),
            sort=self._sort,
            items=tuple(self._items),
            current_page=self._current_page,
            is_loading=self._is_loading,
            is_loading_more=self._is_loading_more,
            has_next_page=self.has_next_page,
            error=self._error,
            pagination=self.pagination,
            recent_searches=tuple(self._recent_searches),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for state changes. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Search state listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Edits (debounced)
    # ------------------------------------------------------------------

    def set_query(self, text: str) -> None:
        if text == self._query:
            return
        self._query = text
        self._on_edit()

    def set_filters(self, filters: Dict[str, Any]) -> None:
        self._filters = dict(filters)
        self._on_edit()

    def update_filter(self, key: str, value: Any) -> None:
        self._filters = {**self._filters, key: value}
        self._on_edit()

    def clear_filters(self) -> None:
        self._filters = dict(self.default_filters)
        self._on_edit()

    def set_sort(self, sort: SortKey) -> None:
        if sort == self._sort:
            return
        self._sort = SortKey(sort)
        self._on_edit()

    def _on_edit(self) -> None:
        self._cancel_debounce()
        self._reset_session()
        self._phase = ClientPhase.DEBOUNCING
        self._debounce_task = asyncio.create_task(self._debounce(self.debounce_ms / 1000))
        self._notify()

    async def _debounce(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._debounce_task = None
        self._fire()

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    def _reset_session(self) -> None:
        """Drop accumulated pages and supersede any in-flight request."""
        self._active_request_id = None
        self._session_request = None
        self._items = []
        self._result = None
        self._current_page = 0
        self._error = None
        self._is_loading = False
        self._is_loading_more = False
        self._failed_request = None

    def _fire(self) -> None:
        if len(self._query.strip()) < self.min_query_length:
            logger.debug(f"Query '{self._query}' below minimum length {self.min_query_length}, not searching")
            self._phase = ClientPhase.IDLE
            self._notify()
            return
        self._start_session()

    def _start_session(self) -> None:
        self._session_request = SearchRequest(
            text=self._query.strip(),
            filters=dict(self._filters),
            sort=self._sort,
            page=1,
            limit=self.page_size,
        )
        self._issue(self._session_request, load_more=False)

    # ------------------------------------------------------------------
    # Imperative actions
    # ------------------------------------------------------------------

    def search_now(self, text: Optional[str] = None) -> bool:
        """
        Search immediately (no debounce) and record the query in recent searches.

        Returns:
            True if a request was issued
        """
        if text is not None:
            self._query = text
        self._cancel_debounce()
        self._reset_session()

        if not self._query.strip():
            self._phase = ClientPhase.IDLE
            self._notify()
            return False

        self.add_to_recent_searches(self._query)
        self._start_session()
        return True

    def load_more(self) -> bool:
        """
        Request the next page of the current session.

        Returns:
            True if a request was issued (has_next_page and nothing in flight)
        """
        if self._session_request is None or not self.has_next_page:
            return False
        if self._active_request_id is not None or self._debounce_task is not None:
            return False

        request = self._session_request.for_page(self._current_page + 1)
        self._issue(request, load_more=True)
        return True

    def refresh(self) -> bool:
        """Re-run page 1 of the current session, replacing items on success."""
        if self._session_request is None:
            return False
        self._issue(self._session_request, load_more=False)
        return True

    def retry(self) -> bool:
        """Re-issue the last failed request. Never called automatically."""
        if self._phase != ClientPhase.FAILED or self._failed_request is None:
            return False
        request, load_more = self._failed_request
        self._issue(request, load_more=load_more)
        return True

    def clear(self) -> None:
        """Reset to IDLE with empty text, default filters and no items."""
        self._cancel_debounce()
        self._reset_session()
        self._query = ""
        self._filters = dict(self.default_filters)
        self._phase = ClientPhase.IDLE
        self._notify()

    def add_to_recent_searches(self, text: str) -> None:
        trimmed = text.strip()
        if not trimmed:
            return
        remaining = [q for q in self._recent_searches if q != trimmed]
        self._recent_searches = [trimmed, *remaining][: self.max_recent_searches]

    def clear_recent_searches(self) -> None:
        self._recent_searches = []
        self._notify()

    def suggestions(self) -> List[Dict[str, str]]:
        """Recent and trending searches matching the current text."""
        needle = self._query.strip().lower()
        candidates = [("recent", q) for q in self._recent_searches]
        candidates += [("trending", q) for q in TRENDING_SEARCHES if q not in self._recent_searches]
        return [
            {"id": f"{kind}-{i}", "text": text, "type": kind}
            for i, (kind, text) in enumerate(candidates)
            if not needle or needle in text.lower()
        ]

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _issue(self, request: SearchRequest, *, load_more: bool) -> None:
        self._request_seq += 1
        request_id = self._request_seq
        self._active_request_id = request_id

        self._is_loading = not load_more
        self._is_loading_more = load_more
        self._error = None
        self._phase = ClientPhase.FETCHING

        logger.debug(f"Issuing search #{request_id}: '{request.text}' page {request.page}")
        task = asyncio.create_task(self._run(request_id, request, load_more))
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)
        self._notify()

    async def _run(self, request_id: int, request: SearchRequest, load_more: bool) -> None:
        try:
            result = await self.transport.search(request)
        except SearchError as exc:
            self._apply_failure(request_id, request, load_more, exc)
            return
        except Exception as exc:
            logger.error(f"Search transport failed unexpectedly: {exc}", exc_info=True)
            self._apply_failure(
                request_id, request, load_more, UpstreamUnavailable(f"Search failed: {exc}")
            )
            return
        self._apply_success(request_id, request, result, load_more)

    def _is_stale(self, request_id: int) -> bool:
        if request_id == self._active_request_id:
            return False
        self.discarded_responses += 1
        logger.debug(f"Discarding superseded search response #{request_id}")
        return True

    def _apply_success(
        self,
        request_id: int,
        request: SearchRequest,
        result: SearchResult,
        load_more: bool,
    ) -> None:
        if self._is_stale(request_id):
            return

        self._active_request_id = None
        if load_more:
            self._items.extend(result.items)
        else:
            self._items = list(result.items)
        self._result = result
        self._current_page = request.page
        self._is_loading = False
        self._is_loading_more = False
        self._failed_request = None
        self._phase = ClientPhase.SETTLED
        self._notify()

    def _apply_failure(
        self,
        request_id: int,
        request: SearchRequest,
        load_more: bool,
        error: SearchError,
    ) -> None:
        if self._is_stale(request_id):
            return

        logger.warning(f"Search #{request_id} failed ({error.code}): {error.message}")
        self._active_request_id = None
        self._error = error
        self._is_loading = False
        self._is_loading_more = False
        self._failed_request = (request, load_more)
        self._phase = ClientPhase.FAILED
        self._notify()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_until_settled(self) -> None:
        """Wait until no debounce timer is pending and no request is on the wire."""
        while self._debounce_task is not None or self._fetch_tasks:
            pending = list(self._fetch_tasks)
            if self._debounce_task is not None:
                pending.append(self._debounce_task)
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Cancel the pending timer and abort requests still on the wire."""
        self._cancel_debounce()
        self._active_request_id = None
        tasks = list(self._fetch_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

"""
Optimistic Watchlist Tracking

Watchlist membership is held as an OptimisticSet value:
    committed - ids confirmed by the store
    pending   - tentative add/remove operations, applied in order on read

A mutation is applied tentatively, then either committed (folded into
`committed`) or rolled back (dropped from `pending`, which replays the
inverse for readers). Rolling back one operation never disturbs others
still in flight.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

_op_ids = itertools.count(1)


class OpKind(str, Enum):
    """Tentative set operation"""
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class PendingOp:
    """One tentative mutation awaiting confirmation"""
    kind: OpKind
    item: str
    op_id: int = field(default_factory=lambda: next(_op_ids))


@dataclass(frozen=True)
class OptimisticSet:
    """Committed membership plus pending operations"""
    committed: FrozenSet[str] = frozenset()
    pending: Tuple[PendingOp, ...] = ()

    @classmethod
    def of(cls, items: Iterable[str]) -> "OptimisticSet":
        return cls(committed=frozenset(items))

    def view(self) -> FrozenSet[str]:
        """Membership as the user should see it right now."""
        current = set(self.committed)
        for op in self.pending:
            if op.kind == OpKind.ADD:
                current.add(op.item)
            else:
                current.discard(op.item)
        return frozenset(current)

    def __contains__(self, item: str) -> bool:
        return item in self.view()

    def is_pending(self, item: str) -> bool:
        return any(op.item == item for op in self.pending)

    def apply(self, kind: OpKind, item: str) -> Tuple["OptimisticSet", PendingOp]:
        """Add a tentative operation. Returns the new value and the op handle."""
        op = PendingOp(kind=OpKind(kind), item=item)
        return replace(self, pending=self.pending + (op,)), op

    def commit(self, op: PendingOp) -> "OptimisticSet":
        """Fold a confirmed operation into committed state."""
        committed = set(self.committed)
        if op.kind == OpKind.ADD:
            committed.add(op.item)
        else:
            committed.discard(op.item)
        return OptimisticSet(
            committed=frozenset(committed),
            pending=tuple(p for p in self.pending if p.op_id != op.op_id),
        )

    def rollback(self, op: PendingOp) -> "OptimisticSet":
        """Drop a failed operation; readers see its inverse."""
        return replace(self, pending=tuple(p for p in self.pending if p.op_id != op.op_id))

    def with_committed(self, items: Iterable[str]) -> "OptimisticSet":
        """Replace committed state (fresh fetch) keeping pending operations."""
        return replace(self, committed=frozenset(items))


class WatchlistStore(ABC):
    """Key-value CRUD collaborator holding user watchlists."""

    @abstractmethod
    async def list_ids(self, user_id: str) -> Set[str]:
        """Content ids on the user's watchlist."""

    @abstractmethod
    async def add(self, user_id: str, content_id: str, notes: Optional[str] = None) -> None:
        """Add content to the watchlist (idempotent)."""

    @abstractmethod
    async def remove(self, user_id: str, content_id: str) -> None:
        """Remove content from the watchlist (idempotent)."""

    @abstractmethod
    async def set_watched(self, user_id: str, content_id: str, watched: bool) -> None:
        """Record whether the user has watched the content."""

    @abstractmethod
    async def list_watched(self, user_id: str) -> Set[str]:
        """Content ids the user has watched."""


class InMemoryWatchlistStore(WatchlistStore):
    """Process-local WatchlistStore"""

    def __init__(self):
        self._watchlists: Dict[str, Dict[str, Optional[str]]] = {}
        self._watched: Dict[str, Set[str]] = {}

    async def list_ids(self, user_id: str) -> Set[str]:
        return set(self._watchlists.get(user_id, {}))

    async def add(self, user_id: str, content_id: str, notes: Optional[str] = None) -> None:
        self._watchlists.setdefault(user_id, {})[content_id] = notes

    async def remove(self, user_id: str, content_id: str) -> None:
        self._watchlists.get(user_id, {}).pop(content_id, None)

    async def set_watched(self, user_id: str, content_id: str, watched: bool) -> None:
        watched_ids = self._watched.setdefault(user_id, set())
        if watched:
            watched_ids.add(content_id)
        else:
            watched_ids.discard(content_id)

    async def list_watched(self, user_id: str) -> Set[str]:
        return set(self._watched.get(user_id, set()))

    def notes(self, user_id: str, content_id: str) -> Optional[str]:
        return self._watchlists.get(user_id, {}).get(content_id)


class WatchlistTracker:
    """
    Optimistic watchlist and watched-state tracking for one user.

    Mutations update the visible state immediately. A store failure rolls
    the mutation back, records it in `last_error` and re-raises.
    """

    def __init__(self, store: WatchlistStore, user_id: str):
        self.store = store
        self.user_id = user_id
        self.watchlist = OptimisticSet()
        self.watched = OptimisticSet()
        self.last_error: Optional[Exception] = None

    async def refresh(self) -> None:
        """Reload committed state from the store."""
        self.watchlist = self.watchlist.with_committed(await self.store.list_ids(self.user_id))
        self.watched = self.watched.with_committed(await self.store.list_watched(self.user_id))

    def is_in_watchlist(self, content_id: str) -> bool:
        return content_id in self.watchlist

    def is_watched(self, content_id: str) -> bool:
        return content_id in self.watched

    @property
    def is_adding(self) -> bool:
        return any(op.kind == OpKind.ADD for op in self.watchlist.pending)

    @property
    def is_removing(self) -> bool:
        return any(op.kind == OpKind.REMOVE for op in self.watchlist.pending)

    async def add(self, content_id: str, notes: Optional[str] = None) -> None:
        self.watchlist, op = self.watchlist.apply(OpKind.ADD, content_id)
        try:
            await self.store.add(self.user_id, content_id, notes)
        except Exception as e:
            self._fail_watchlist(op, e)
            raise
        self.watchlist = self.watchlist.commit(op)
        self.last_error = None

    async def remove(self, content_id: str) -> None:
        self.watchlist, op = self.watchlist.apply(OpKind.REMOVE, content_id)
        try:
            await self.store.remove(self.user_id, content_id)
        except Exception as e:
            self._fail_watchlist(op, e)
            raise
        self.watchlist = self.watchlist.commit(op)
        self.last_error = None

    async def toggle(self, content_id: str) -> bool:
        """Flip membership. Returns the new membership."""
        if self.is_in_watchlist(content_id):
            await self.remove(content_id)
            return False
        await self.add(content_id)
        return True

    async def mark_as_watched(self, content_id: str) -> None:
        self.watched, op = self.watched.apply(OpKind.ADD, content_id)
        try:
            await self.store.set_watched(self.user_id, content_id, True)
        except Exception as e:
            self.watched = self.watched.rollback(op)
            self.last_error = e
            logger.warning(f"Failed to mark {content_id} as watched, rolled back: {e}")
            raise
        self.watched = self.watched.commit(op)
        self.last_error = None

    def _fail_watchlist(self, op: PendingOp, error: Exception) -> None:
        self.watchlist = self.watchlist.rollback(op)
        self.last_error = error
        logger.warning(f"Watchlist {op.kind.value} failed for {op.item}, rolled back: {error}")

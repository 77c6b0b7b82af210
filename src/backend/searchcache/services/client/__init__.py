"""Client-side search session, transports and optimistic watchlist tracking."""

from .optimistic import (
    InMemoryWatchlistStore,
    OpKind,
    OptimisticSet,
    PendingOp,
    WatchlistStore,
    WatchlistTracker,
)
from .query_coordinator import ClientPhase, ClientQueryCoordinator, ClientSearchState
from .transport import HttpSearchTransport, LocalSearchTransport, SearchTransport

__all__ = [
    "ClientPhase",
    "ClientQueryCoordinator",
    "ClientSearchState",
    "HttpSearchTransport",
    "InMemoryWatchlistStore",
    "LocalSearchTransport",
    "OpKind",
    "OptimisticSet",
    "PendingOp",
    "SearchTransport",
    "WatchlistStore",
    "WatchlistTracker",
]

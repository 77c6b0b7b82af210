"""
Unit tests for optimistic watchlist tracking
Tests OptimisticSet commit/rollback and WatchlistTracker failure handling
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from searchcache.services.client.optimistic import (
    InMemoryWatchlistStore,
    OpKind,
    OptimisticSet,
    WatchlistTracker,
)


@pytest.mark.unit
class TestOptimisticSet:

    def test_apply_is_visible_immediately(self):
        value, op = OptimisticSet.of(["a"]).apply(OpKind.ADD, "b")

        assert value.view() == frozenset({"a", "b"})
        assert "b" in value
        assert value.is_pending("b")
        assert value.committed == frozenset({"a"})

    def test_commit_folds_into_committed(self):
        value, op = OptimisticSet.of(["a"]).apply(OpKind.REMOVE, "a")

        value = value.commit(op)

        assert value.committed == frozenset()
        assert value.pending == ()

    def test_rollback_restores_prior_view(self):
        original = OptimisticSet.of(["a"])
        value, op = original.apply(OpKind.ADD, "b")

        assert value.rollback(op).view() == original.view()

    def test_rollback_of_one_op_keeps_others(self):
        value, add_b = OptimisticSet().apply(OpKind.ADD, "b")
        value, add_c = value.apply(OpKind.ADD, "c")

        value = value.rollback(add_b)

        assert value.view() == frozenset({"c"})
        assert value.is_pending("c")

    def test_pending_ops_apply_in_order(self):
        value, _ = OptimisticSet().apply(OpKind.ADD, "a")
        value, _ = value.apply(OpKind.REMOVE, "a")

        assert "a" not in value

    def test_with_committed_keeps_pending(self):
        value, _ = OptimisticSet.of(["a"]).apply(OpKind.ADD, "b")

        value = value.with_committed(["x"])

        assert value.view() == frozenset({"x", "b"})

    def test_values_are_immutable(self):
        original = OptimisticSet.of(["a"])
        original.apply(OpKind.ADD, "b")

        assert original.view() == frozenset({"a"})


@pytest.fixture
def store():
    return InMemoryWatchlistStore()


@pytest.mark.unit
class TestWatchlistTracker:

    @pytest.mark.asyncio
    async def test_add_and_remove(self, store):
        tracker = WatchlistTracker(store, "user-1")

        await tracker.add("c-1", notes="watch with friends")
        assert tracker.is_in_watchlist("c-1")
        assert await store.list_ids("user-1") == {"c-1"}
        assert store.notes("user-1", "c-1") == "watch with friends"

        await tracker.remove("c-1")
        assert not tracker.is_in_watchlist("c-1")
        assert tracker.watchlist.pending == ()

    @pytest.mark.asyncio
    async def test_toggle(self, store):
        tracker = WatchlistTracker(store, "user-1")

        assert await tracker.toggle("c-1") is True
        assert await tracker.toggle("c-1") is False
        assert await store.list_ids("user-1") == set()

    @pytest.mark.asyncio
    async def test_refresh_loads_committed_state(self, store):
        await store.add("user-1", "c-1")
        await store.set_watched("user-1", "c-2", True)
        tracker = WatchlistTracker(store, "user-1")

        await tracker.refresh()

        assert tracker.is_in_watchlist("c-1")
        assert tracker.is_watched("c-2")

    @pytest.mark.asyncio
    async def test_failed_add_rolls_back_and_reraises(self, store):
        store.add = AsyncMock(side_effect=ConnectionError("offline"))
        tracker = WatchlistTracker(store, "user-1")

        with pytest.raises(ConnectionError):
            await tracker.add("c-1")

        assert not tracker.is_in_watchlist("c-1")
        assert isinstance(tracker.last_error, ConnectionError)
        assert tracker.is_adding is False

    @pytest.mark.asyncio
    async def test_failed_remove_restores_membership(self, store):
        await store.add("user-1", "c-1")
        tracker = WatchlistTracker(store, "user-1")
        await tracker.refresh()
        store.remove = AsyncMock(side_effect=ConnectionError("offline"))

        with pytest.raises(ConnectionError):
            await tracker.remove("c-1")

        assert tracker.is_in_watchlist("c-1")

    @pytest.mark.asyncio
    async def test_membership_visible_while_store_call_pending(self, store):
        gate = asyncio.Event()
        original_add = store.add

        async def slow_add(user_id, content_id, notes=None):
            await gate.wait()
            await original_add(user_id, content_id, notes)

        store.add = slow_add
        tracker = WatchlistTracker(store, "user-1")

        task = asyncio.create_task(tracker.add("c-1"))
        await asyncio.sleep(0)

        assert tracker.is_in_watchlist("c-1")
        assert tracker.is_adding is True

        gate.set()
        await task
        assert tracker.is_adding is False
        assert tracker.watchlist.committed == frozenset({"c-1"})

    @pytest.mark.asyncio
    async def test_removal_hidden_while_store_call_pending(self, store):
        await store.add("user-1", "c-1")
        tracker = WatchlistTracker(store, "user-1")
        await tracker.refresh()
        gate = asyncio.Event()
        original_remove = store.remove

        async def slow_remove(user_id, content_id):
            await gate.wait()
            await original_remove(user_id, content_id)

        store.remove = slow_remove

        task = asyncio.create_task(tracker.remove("c-1"))
        await asyncio.sleep(0)

        assert not tracker.is_in_watchlist("c-1")
        assert tracker.is_removing is True
        assert tracker.is_adding is False

        gate.set()
        await task
        assert tracker.is_removing is False
        assert tracker.watchlist.committed == frozenset()

    @pytest.mark.asyncio
    async def test_concurrent_failure_does_not_undo_other_ops(self, store):
        gate = asyncio.Event()
        original_add = store.add

        async def flaky_add(user_id, content_id, notes=None):
            await gate.wait()
            if content_id == "bad":
                raise ConnectionError("offline")
            await original_add(user_id, content_id, notes)

        store.add = flaky_add
        tracker = WatchlistTracker(store, "user-1")

        good = asyncio.create_task(tracker.add("good"))
        bad = asyncio.create_task(tracker.add("bad"))
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(good, bad, return_exceptions=True)

        assert results[0] is None
        assert isinstance(results[1], ConnectionError)
        assert tracker.is_in_watchlist("good")
        assert not tracker.is_in_watchlist("bad")

    @pytest.mark.asyncio
    async def test_mark_as_watched(self, store):
        tracker = WatchlistTracker(store, "user-1")

        await tracker.mark_as_watched("c-1")

        assert tracker.is_watched("c-1")
        assert await store.list_watched("user-1") == {"c-1"}

    @pytest.mark.asyncio
    async def test_failed_mark_as_watched_rolls_back(self, store):
        store.set_watched = AsyncMock(side_effect=ConnectionError("offline"))
        tracker = WatchlistTracker(store, "user-1")

        with pytest.raises(ConnectionError):
            await tracker.mark_as_watched("c-1")

        assert not tracker.is_watched("c-1")
        assert tracker.last_error is not None

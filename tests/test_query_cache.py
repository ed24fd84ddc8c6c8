"""Tests for the query cache: coalescing, freshness, retries, invalidation."""

import asyncio

import pytest

from adminsync.cache.keys import FilterTuple, detail_key, list_key, match_entity, match_lists
from adminsync.cache.query_cache import QueryCache
from adminsync.transport.errors import CANCELLED, ApiError


class CountingFetcher:
    """Async fetcher returning scripted outcomes and counting calls."""

    def __init__(self, *outcomes, delay: float = 0.0):
        self.outcomes = list(outcomes) or ["value"]
        self.delay = delay
        self.calls = 0
        self.tokens = []

    async def __call__(self, token):
        self.calls += 1
        self.tokens.append(token)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


KEY = list_key("bookings", FilterTuple(status="pending"))


def test_concurrent_resolves_share_one_fetch(cache):
    fetcher = CountingFetcher("rows", delay=0.01)

    async def scenario():
        return await asyncio.gather(*(cache.resolve(KEY, fetcher) for _ in range(5)))

    states = asyncio.run(scenario())

    assert fetcher.calls == 1
    assert [s.data for s in states] == ["rows"] * 5
    assert all(not s.is_loading for s in states)


def test_fresh_entry_returns_without_fetch(cache, clock):
    fetcher = CountingFetcher("rows")

    async def scenario():
        await cache.resolve(KEY, fetcher)
        clock.advance(60)
        return await cache.resolve(KEY, fetcher)

    state = asyncio.run(scenario())

    assert fetcher.calls == 1
    assert state.data == "rows"
    assert state.is_stale is False
    assert state.is_loading is False


def test_stale_entry_returns_old_data_and_refreshes_once(cache, clock):
    fetcher = CountingFetcher("old", "new", delay=0.01)

    async def scenario():
        await cache.resolve(KEY, fetcher)
        clock.advance(121)
        first = await cache.resolve(KEY, fetcher)
        second = await cache.resolve(KEY, fetcher)
        settled = await cache.settle(KEY)
        return first, second, settled

    first, second, settled = asyncio.run(scenario())

    assert first.data == "old"
    assert first.is_fetching is True
    assert first.is_loading is False
    assert second.data == "old"
    assert settled.data == "new"
    assert fetcher.calls == 2


def test_missing_entry_reports_loading_while_fetching(cache):
    fetcher = CountingFetcher("rows", delay=0.01)
    seen = []

    async def scenario():
        cache.subscribe(KEY, seen.append)
        await cache.resolve(KEY, fetcher)

    asyncio.run(scenario())

    assert seen[0].is_loading is True
    assert seen[-1].is_loading is False
    assert seen[-1].data == "rows"


def test_server_errors_are_retried(cache):
    fetcher = CountingFetcher(ApiError(503, "busy"), ApiError(0, "offline"), "rows")

    state = asyncio.run(cache.resolve(KEY, fetcher))

    assert fetcher.calls == 3
    assert state.data == "rows"
    assert state.error is None


def test_retries_are_bounded(cache):
    fetcher = CountingFetcher(ApiError(500, "boom"))

    state = asyncio.run(cache.resolve(KEY, fetcher, retry=2))

    assert fetcher.calls == 3
    assert isinstance(state.error, ApiError)
    assert state.error.code == 500
    assert state.has_data is False


def test_client_errors_are_not_retried(cache):
    fetcher = CountingFetcher(ApiError(404, "Booking not found"))

    state = asyncio.run(cache.resolve(KEY, fetcher))

    assert fetcher.calls == 1
    assert state.error.message == "Booking not found"


def test_failed_refresh_keeps_previous_data(cache, clock):
    fetcher = CountingFetcher("rows", ApiError(400, "bad filter"))

    async def scenario():
        await cache.resolve(KEY, fetcher)
        clock.advance(200)
        await cache.resolve(KEY, fetcher)
        return await cache.settle(KEY)

    state = asyncio.run(scenario())

    assert state.data == "rows"
    assert state.error.code == 400


def test_cancelled_fetch_is_not_retried_or_stored(cache):
    fetcher = CountingFetcher(CANCELLED)

    state = asyncio.run(cache.resolve(KEY, fetcher))

    assert fetcher.calls == 1
    assert state.cancelled is True
    assert state.error is None
    assert state.has_data is False


def test_invalidate_forces_fetch_inside_stale_window(cache, clock):
    fetcher = CountingFetcher("v1", "v2")

    async def scenario():
        await cache.resolve(KEY, fetcher)
        clock.advance(5)
        assert cache.invalidate(match_lists("bookings")) == 1
        state = await cache.resolve(KEY, fetcher)
        await cache.settle(KEY)
        return state

    state = asyncio.run(scenario())

    # stale payload is served while the refetch runs
    assert state.data == "v1"
    assert fetcher.calls == 2
    assert cache.snapshot(KEY).data == "v2"


def test_invalidate_without_subscribers_only_marks_stale(cache):
    fetcher = CountingFetcher("rows")
    asyncio.run(cache.resolve(KEY, fetcher))

    assert cache.snapshot(KEY).is_stale is False
    assert cache.invalidate(match_lists("bookings")) == 1

    snapshot = cache.snapshot(KEY)
    assert snapshot.is_stale is True
    assert snapshot.is_fetching is False
    assert snapshot.data == "rows"
    assert fetcher.calls == 1


def test_invalidate_refetches_subscribed_entries(cache):
    fetcher = CountingFetcher("v1", "v2")
    seen = []

    async def scenario():
        unsubscribe = cache.subscribe(KEY, seen.append)
        await cache.resolve(KEY, fetcher)
        cache.invalidate(match_lists("bookings"))
        state = await cache.settle(KEY)
        unsubscribe()
        return state

    state = asyncio.run(scenario())

    assert fetcher.calls == 2
    assert state.data == "v2"
    assert state.is_stale is False
    assert seen[-1].data == "v2"


def test_invalidate_matches_only_selected_keys(cache):
    other = detail_key("bookings", "b-1")
    fetcher = CountingFetcher("rows")

    async def scenario():
        await cache.resolve(KEY, fetcher)
        await cache.resolve(other, fetcher)

    asyncio.run(scenario())

    assert cache.invalidate(match_entity("bookings", "b-1")) == 1
    assert cache.snapshot(other).is_stale is True
    assert cache.snapshot(KEY).is_stale is False


def test_invalidation_during_fetch_leaves_result_stale(cache):
    release = None

    async def fetcher(token):
        await release.wait()
        return "fetched-before-write"

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        task = asyncio.create_task(cache.resolve(KEY, fetcher))
        await asyncio.sleep(0)
        cache.invalidate(match_lists("bookings"))
        release.set()
        return await task

    state = asyncio.run(scenario())

    assert state.data == "fetched-before-write"
    assert state.is_stale is True


def test_resolve_after_invalidate_replaces_background_refresh(cache, clock):
    tokens = []
    release = None

    async def fetcher(token):
        tokens.append(token)
        call = len(tokens)
        if call == 2:
            await release.wait()
        return f"v{call}"

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        await cache.resolve(KEY, fetcher)
        clock.advance(200)
        await cache.resolve(KEY, fetcher)
        await asyncio.sleep(0)
        cache.invalidate(match_lists("bookings"))
        await cache.resolve(KEY, fetcher)
        settled = await cache.settle(KEY)
        release.set()
        await asyncio.sleep(0.01)
        return settled

    settled = asyncio.run(scenario())

    assert len(tokens) == 3
    assert tokens[1].cancelled is True
    assert settled.data == "v3"
    assert settled.is_stale is False
    assert cache.snapshot(KEY).data == "v3"


def test_waiter_on_replaced_fetch_gets_new_result(cache):
    tokens = []
    release = None

    async def fetcher(token):
        tokens.append(token)
        if len(tokens) == 1:
            await release.wait()
        return f"v{len(tokens)}"

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        first = asyncio.create_task(cache.resolve(KEY, fetcher))
        await asyncio.sleep(0)
        cache.invalidate(match_lists("bookings"))
        second = await cache.resolve(KEY, fetcher)
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert len(tokens) == 2
    assert first.cancelled is False
    assert first.data == "v2"
    assert second.data == "v2"


def test_last_unsubscribe_cancels_in_flight_fetch(cache):
    fetcher = CountingFetcher("rows", delay=0.02)

    async def scenario():
        unsubscribe = cache.subscribe(KEY, lambda state: None)
        task = asyncio.create_task(cache.resolve(KEY, fetcher))
        await asyncio.sleep(0)
        unsubscribe()
        return await task

    state = asyncio.run(scenario())

    assert fetcher.tokens[0].cancelled is True
    assert state.cancelled is True
    assert cache.snapshot(KEY).has_data is False


def test_unsubscribe_keeps_fetch_for_remaining_subscribers(cache):
    fetcher = CountingFetcher("rows", delay=0.01)

    async def scenario():
        first = cache.subscribe(KEY, lambda state: None)
        cache.subscribe(KEY, lambda state: None)
        task = asyncio.create_task(cache.resolve(KEY, fetcher))
        await asyncio.sleep(0)
        first()
        return await task

    state = asyncio.run(scenario())

    assert state.cancelled is False
    assert state.data == "rows"
    assert cache.subscriber_count(KEY) == 1


def test_refetch_requires_known_fetcher(cache):
    with pytest.raises(KeyError):
        asyncio.run(cache.refetch(KEY))


def test_lru_evicts_oldest_idle_entry(clock):
    cache = QueryCache(clock=clock, max_entries=2)
    fetcher = CountingFetcher("rows")
    keys = [list_key("bookings", page=page) for page in (1, 2, 3)]

    async def scenario():
        for key in keys:
            await cache.resolve(key, fetcher)

    asyncio.run(scenario())

    assert len(cache) == 2
    assert keys[0] not in cache
    assert keys[2] in cache


def test_lru_keeps_subscribed_entries(clock):
    cache = QueryCache(clock=clock, max_entries=1)
    fetcher = CountingFetcher("rows")
    pinned = list_key("bookings", page=1)
    cache.subscribe(pinned, lambda state: None)

    asyncio.run(cache.resolve(list_key("bookings", page=2), fetcher))

    assert pinned in cache


def test_failing_listener_does_not_break_others(cache):
    seen = []

    def broken(state):
        raise RuntimeError("listener bug")

    async def scenario():
        cache.subscribe(KEY, broken)
        cache.subscribe(KEY, seen.append)
        await cache.resolve(KEY, CountingFetcher("rows"))

    asyncio.run(scenario())

    assert seen[-1].data == "rows"


def test_blank_filters_share_a_key():
    assert list_key("bookings", FilterTuple(status="", search="  ")) == list_key("bookings")
    assert hash(list_key("bookings", FilterTuple(status=None))) == hash(list_key("bookings"))


def test_stats_counts_entries(cache):
    cache.subscribe(KEY, lambda state: None)
    asyncio.run(cache.resolve(detail_key("users", "u1"), CountingFetcher(ApiError(404, "gone"))))

    assert cache.stats() == {"entries": 2, "in_flight": 0, "subscribed": 1, "errored": 1}


def test_remove_drops_entries(cache):
    asyncio.run(cache.resolve(KEY, CountingFetcher("rows")))

    assert cache.remove(match_lists("bookings")) == 1
    assert KEY not in cache

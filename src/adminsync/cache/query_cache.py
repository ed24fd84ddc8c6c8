"""Query cache with request coalescing, stale-while-refresh and invalidation.

One QueryCache is shared by every list screen in a process. All entry
mutations happen on the event loop thread; fetchers may do their blocking
work in a worker thread but hand results back through the loop.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from adminsync.cache.keys import QueryKey
from adminsync.transport.cancellation import CancellationToken
from adminsync.transport.errors import CANCELLED, ApiError
from adminsync.utils.logging import get_logger

logger = get_logger(__name__)

Fetcher = Callable[[CancellationToken], Awaitable[Any]]
Listener = Callable[["QueryState"], None]
KeyPredicate = Callable[[QueryKey], bool]

OUTCOME_SUCCESS = "success"
OUTCOME_ERROR = "error"
OUTCOME_CANCELLED = "cancelled"


@dataclass
class QueryState:
    """What a subscriber sees for one key at one moment."""

    key: QueryKey
    data: Any = None
    is_loading: bool = False  # no data yet, first fetch running
    is_fetching: bool = False  # any fetch running, including background refresh
    is_stale: bool = True
    error: Optional[BaseException] = None
    fetched_at: Optional[float] = None
    cancelled: bool = False

    @property
    def has_data(self) -> bool:
        return self.fetched_at is not None


@dataclass
class _InFlight:
    task: "asyncio.Task[str]"
    token: CancellationToken
    generation: int
    replaced_by: Optional["_InFlight"] = None


@dataclass
class CacheEntry:
    key: QueryKey
    payload: Any = None
    fetched_at: Optional[float] = None
    error: Optional[BaseException] = None
    invalidated: bool = False
    generation: int = 0
    in_flight: Optional[_InFlight] = None
    fetcher: Optional[Fetcher] = None
    stale_time: float = 0.0
    retry: int = 0
    listeners: List[Listener] = field(default_factory=list)

    @property
    def has_payload(self) -> bool:
        return self.fetched_at is not None

    def is_fresh(self, now: float) -> bool:
        if self.fetched_at is None or self.invalidated:
            return False
        return now - self.fetched_at < self.stale_time

    def active_flight(self) -> Optional[_InFlight]:
        flight = self.in_flight
        if flight is None or flight.task.done() or flight.token.cancelled:
            return None
        return flight


class QueryCache:
    """Keyed store of query results shared by all subscribers."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        stale_time: float = 120.0,
        retry: int = 2,
        max_entries: int = 256,
    ):
        """
        Initialize cache.

        Args:
            clock: Monotonic seconds source (tests inject a fake)
            stale_time: Default seconds an entry stays fresh after a fetch
            retry: Default extra attempts for retryable read failures
            max_entries: LRU bound; entries with subscribers or fetches in flight are kept
        """
        self.clock = clock
        self.default_stale_time = stale_time
        self.default_retry = retry
        self.max_entries = max_entries
        self._entries: "OrderedDict[QueryKey, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def get_entry(self, key: QueryKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def _entry(self, key: QueryKey) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key, stale_time=self.default_stale_time, retry=self.default_retry)
            self._entries[key] = entry
            self._evict(keep=key)
        else:
            self._entries.move_to_end(key)
        return entry

    def _evict(self, keep: Optional[QueryKey] = None) -> None:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        for key in list(self._entries):
            if overflow <= 0:
                break
            entry = self._entries[key]
            if key == keep or entry.listeners or entry.active_flight() is not None:
                continue
            del self._entries[key]
            overflow -= 1
            logger.debug(f"Evicted {key.describe()}")

    def snapshot(self, key: QueryKey) -> QueryState:
        """Current state for a key without touching the network."""
        entry = self._entries.get(key)
        if entry is None:
            return QueryState(key=key)
        return self._state(entry)

    def _state(self, entry: CacheEntry, cancelled: bool = False) -> QueryState:
        fetching = entry.active_flight() is not None
        return QueryState(
            key=entry.key,
            data=entry.payload,
            is_loading=fetching and not entry.has_payload,
            is_fetching=fetching,
            is_stale=not entry.is_fresh(self.clock()),
            error=entry.error,
            fetched_at=entry.fetched_at,
            cancelled=cancelled,
        )

    def _notify(self, entry: CacheEntry) -> None:
        if not entry.listeners:
            return
        state = self._state(entry)
        for listener in list(entry.listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Listener for {entry.key.describe()} failed: {e}", exc_info=True)

    async def resolve(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        stale_time: Optional[float] = None,
        retry: Optional[int] = None,
    ) -> QueryState:
        """
        Resolve a key through the cache.

        Fresh entries return immediately. Stale entries return their payload
        immediately and start one background refresh. Missing entries wait for
        the fetch. Concurrent resolves of a key share one in-flight fetch.

        Args:
            key: Query key
            fetcher: Coroutine function taking a CancellationToken
            stale_time: Seconds the result stays fresh (defaults to cache setting)
            retry: Extra attempts on retryable failures (defaults to cache setting)

        Returns:
            QueryState snapshot
        """
        entry = self._entry(key)
        entry.fetcher = fetcher
        if stale_time is not None:
            entry.stale_time = stale_time
        if retry is not None:
            entry.retry = retry

        if entry.is_fresh(self.clock()):
            return self._state(entry)

        flight = self._start_fetch(entry)
        if entry.has_payload:
            return self._state(entry)

        return await self._await_flight(entry, flight)

    async def settle(self, key: QueryKey) -> QueryState:
        """Wait for the fetch in flight for key (if any) and return the result."""
        entry = self._entries.get(key)
        if entry is None:
            return QueryState(key=key)
        flight = entry.active_flight()
        if flight is None:
            return self._state(entry)
        return await self._await_flight(entry, flight)

    async def refetch(self, key: QueryKey) -> QueryState:
        """Fetch again regardless of freshness, reusing the last fetcher."""
        entry = self._entries.get(key)
        if entry is None or entry.fetcher is None:
            raise KeyError(f"No fetcher registered for {key.describe()}")
        flight = self._start_fetch(entry)
        return await self._await_flight(entry, flight)

    async def _await_flight(self, entry: CacheEntry, flight: _InFlight) -> QueryState:
        outcome = await asyncio.shield(flight.task)
        # a flight replaced after an invalidation hands its waiters to the new one
        while outcome == OUTCOME_CANCELLED and flight.replaced_by is not None:
            flight = flight.replaced_by
            outcome = await asyncio.shield(flight.task)
        return self._state(entry, cancelled=outcome == OUTCOME_CANCELLED)

    def _start_fetch(self, entry: CacheEntry) -> _InFlight:
        previous = entry.active_flight()
        if previous is not None:
            if previous.generation == entry.generation:
                logger.debug(f"Coalescing onto in-flight fetch for {entry.key.describe()}")
                return previous
            # started before an invalidation; its result would be stale on arrival
            logger.debug(f"Replacing pre-invalidation fetch for {entry.key.describe()}")
            previous.token.cancel()
        if entry.fetcher is None:
            raise KeyError(f"No fetcher registered for {entry.key.describe()}")

        token = CancellationToken()
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_fetch(entry, entry.fetcher, token, entry.generation))
        flight = _InFlight(task=task, token=token, generation=entry.generation)
        if previous is not None:
            previous.replaced_by = flight
        entry.in_flight = flight
        self._notify(entry)
        return flight

    async def _run_fetch(
        self,
        entry: CacheEntry,
        fetcher: Fetcher,
        token: CancellationToken,
        generation: int,
    ) -> str:
        attempts = 1 + max(0, entry.retry)
        outcome = OUTCOME_ERROR
        try:
            for attempt in range(1, attempts + 1):
                try:
                    result = await fetcher(token)
                except Exception as e:
                    if token.cancelled:
                        outcome = OUTCOME_CANCELLED
                        break
                    retryable = isinstance(e, ApiError) and e.retryable
                    if retryable and attempt < attempts:
                        logger.debug(
                            f"Fetch for {entry.key.describe()} failed ({e}); retry {attempt}/{attempts - 1}"
                        )
                        continue
                    entry.error = e
                    logger.warning(f"Fetch for {entry.key.describe()} failed after {attempt} attempt(s): {e}")
                    outcome = OUTCOME_ERROR
                    break

                if result is CANCELLED or token.cancelled:
                    logger.debug(f"Discarding cancelled fetch for {entry.key.describe()}")
                    outcome = OUTCOME_CANCELLED
                    break

                entry.payload = result
                entry.fetched_at = self.clock()
                entry.error = None
                # invalidated while in flight: keep the data but leave it stale
                entry.invalidated = entry.generation != generation
                outcome = OUTCOME_SUCCESS
                break
        finally:
            if entry.in_flight is not None and entry.in_flight.token is token:
                entry.in_flight = None
        if outcome != OUTCOME_CANCELLED:
            self._notify(entry)
        return outcome

    def subscribe(self, key: QueryKey, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state changes of key.

        Returns an unsubscribe callable. When the last listener leaves, any
        fetch in flight for the key is cancelled and its result discarded.
        """
        entry = self._entry(key)
        entry.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in entry.listeners:
                entry.listeners.remove(listener)
            if not entry.listeners:
                flight = entry.active_flight()
                if flight is not None:
                    logger.debug(f"Last subscriber left {key.describe()}; cancelling fetch")
                    flight.token.cancel()

        return unsubscribe

    def subscriber_count(self, key: QueryKey) -> int:
        entry = self._entries.get(key)
        return len(entry.listeners) if entry else 0

    def cancel(self, key: QueryKey) -> bool:
        """Cancel the fetch in flight for key. Returns True if one was cancelled."""
        entry = self._entries.get(key)
        flight = entry.active_flight() if entry else None
        if flight is None:
            return False
        flight.token.cancel()
        return True

    def invalidate(self, predicate: KeyPredicate) -> int:
        """
        Mark every matching entry stale.

        Entries with live subscribers are refetched right away when called on a
        running loop; the rest refetch on their next resolve.

        Returns:
            Number of entries marked stale
        """
        matched = [entry for key, entry in self._entries.items() if predicate(key)]
        try:
            asyncio.get_running_loop()
            can_refetch = True
        except RuntimeError:
            can_refetch = False

        for entry in matched:
            entry.invalidated = True
            entry.generation += 1
            if entry.listeners and entry.fetcher is not None and can_refetch:
                self._start_fetch(entry)
            else:
                self._notify(entry)

        if matched:
            logger.debug(f"Invalidated {len(matched)} cache entr{'y' if len(matched) == 1 else 'ies'}")
        return len(matched)

    def remove(self, predicate: KeyPredicate) -> int:
        """Drop matching entries outright, cancelling their fetches."""
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            entry = self._entries.pop(key)
            flight = entry.active_flight()
            if flight is not None:
                flight.token.cancel()
        return len(doomed)

    def clear(self) -> None:
        self.remove(lambda _key: True)

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def stats(self) -> Dict[str, int]:
        entries = list(self._entries.values())
        return {
            "entries": len(entries),
            "in_flight": sum(1 for e in entries if e.active_flight() is not None),
            "subscribed": sum(1 for e in entries if e.listeners),
            "errored": sum(1 for e in entries if e.error is not None),
        }

"""Per-screen list controller: filters, page window and cache subscription."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

from adminsync.cache.keys import FilterTuple, QueryKey, list_key
from adminsync.cache.query_cache import QueryCache, QueryState
from adminsync.controller.fetchers import list_fetcher
from adminsync.controller.pagination import PageSummary, clamp_page, summarize, total_pages
from adminsync.resources.catalog import ResourceSpec
from adminsync.resources.envelope import ResultSet
from adminsync.transport.adapter import TransportAdapter
from adminsync.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 10


class ListController:
    """
    Holds the filter/page state of one list view.

    Every state change recomputes the query key and re-resolves it through the
    shared QueryCache. The controller never talks to the network itself; the
    cache decides whether a fetch is needed.

    Only results for the current key are applied, so a slow response for a
    superseded filter can never overwrite the latest one.
    """

    def __init__(
        self,
        resource: ResourceSpec,
        cache: QueryCache,
        transport: TransportAdapter,
        *,
        page_size: Optional[int] = None,
        filters: Optional[FilterTuple] = None,
        stale_time: Optional[float] = None,
        retry: Optional[int] = None,
        on_change: Optional[Callable[["ListController"], None]] = None,
    ):
        self.resource = resource
        self.cache = cache
        self.transport = transport
        self.stale_time = stale_time
        self.retry = retry
        self.on_change = on_change

        self.filters = filters or FilterTuple()
        self.page = 1
        self.page_size = page_size or resource.page_size or DEFAULT_PAGE_SIZE
        self._total = 0
        self._state: Optional[QueryState] = None
        self._tasks: Set["asyncio.Task[QueryState]"] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._subscribed_key: Optional[QueryKey] = None
        self._closed = False
        self._subscribe(self.key)

    @property
    def key(self) -> QueryKey:
        return list_key(self.resource.name, self.filters, self.page, self.page_size)

    # -- state changes -------------------------------------------------

    def set_filter(self, partial: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:
        """Merge filters and return to the first page."""
        changes = {**(partial or {}), **kwargs}
        unsupported = set(changes) - set(self.resource.filters)
        if unsupported:
            raise ValueError(
                f"Resource '{self.resource.name}' does not filter on {sorted(unsupported)}"
            )
        self.filters = self.filters.merge(changes)
        self.page = 1
        self._rekey()

    def clear_filters(self) -> None:
        self.filters = FilterTuple()
        self.page = 1
        self._rekey()

    def set_page(self, page: int) -> None:
        """Move to page, clamped to [1, total_pages]."""
        self.page = clamp_page(page, self.total, self.page_size)
        self._rekey()

    def next_page(self) -> None:
        self.set_page(self.page + 1)

    def previous_page(self) -> None:
        self.set_page(self.page - 1)

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.page_size = page_size
        self.page = 1
        self._rekey()

    # -- derived values ------------------------------------------------

    @property
    def result(self) -> Optional[ResultSet]:
        if self._state is None or not isinstance(self._state.data, ResultSet):
            return None
        return self._state.data

    @property
    def items(self) -> List[Any]:
        result = self.result
        return list(result.items) if result is not None else []

    @property
    def total(self) -> int:
        return self._total

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.page_size)

    @property
    def start_index(self) -> int:
        return self.summary.start_index

    @property
    def end_index(self) -> int:
        return self.summary.end_index

    @property
    def summary(self) -> PageSummary:
        result = self.result
        approximate = bool(result and result.total_is_approximate)
        return summarize(self.page, self.page_size, self.total, approximate)

    @property
    def state(self) -> Optional[QueryState]:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self.cache.snapshot(self.key).is_loading

    @property
    def error(self) -> Optional[BaseException]:
        return self._state.error if self._state is not None else None

    # -- cache plumbing ------------------------------------------------

    def _subscribe(self, key: QueryKey) -> None:
        if self._subscribed_key == key:
            return
        previous = self._unsubscribe
        self._unsubscribe = self.cache.subscribe(key, self._on_state)
        self._subscribed_key = key
        # leaving the old key cancels its fetch if nobody else is watching
        if previous is not None:
            previous()

    def _rekey(self) -> None:
        if self._closed:
            raise RuntimeError("ListController is closed")
        self._subscribe(self.key)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.load())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_state(self, state: QueryState) -> None:
        self._apply(state)

    def _apply(self, state: QueryState) -> bool:
        if state.key != self.key:
            logger.debug(f"Ignoring result for superseded key {state.key.describe()}")
            return False
        if state.cancelled:
            return False
        self._state = state
        if isinstance(state.data, ResultSet):
            self._total = state.data.total
        if self.on_change is not None:
            self.on_change(self)
        return True

    async def load(self) -> QueryState:
        """Resolve the current key through the cache and apply the result."""
        key = self.key
        state = await self.cache.resolve(
            key,
            list_fetcher(self.transport, self.resource, key),
            stale_time=self.stale_time,
            retry=self.retry,
        )
        self._apply(state)
        return state

    async def refresh(self) -> QueryState:
        """Refetch the current key even if it is fresh."""
        key = self.key
        entry = self.cache.get_entry(key)
        if entry is None or entry.fetcher is None:
            return await self.load()
        state = await self.cache.refetch(key)
        self._apply(state)
        return state

    async def settle(self) -> Optional[QueryState]:
        """Wait for scheduled loads and any background refresh of the current key."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        state = await self.cache.settle(self.key)
        if state.has_data or state.error is not None:
            self._apply(state)
        return self._state

    def close(self) -> None:
        """Detach from the cache; a fetch nobody else watches is cancelled."""
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._tasks):
            task.cancel()

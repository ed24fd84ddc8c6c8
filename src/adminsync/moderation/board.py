"""Moderation queue: pending reports grouped by message, plus review actions."""

from typing import Callable, List, Optional

from adminsync.cache.keys import QueryKey, list_key
from adminsync.cache.query_cache import QueryCache, QueryState
from adminsync.controller.fetchers import list_fetcher
from adminsync.moderation.grouping import ReportGroup, ReportGrouper, ReportRecord
from adminsync.mutations import actions
from adminsync.mutations.dispatcher import MutationDispatcher
from adminsync.resources.catalog import MODERATION_REPORTS, ResourceSpec
from adminsync.resources.envelope import ResultSet
from adminsync.transport.adapter import ApiResult, TransportAdapter
from adminsync.transport.errors import _Cancelled
from adminsync.utils.logging import get_logger

logger = get_logger(__name__)

# The queue is shown unpaginated; this is the most reports one load keeps.
QUEUE_WINDOW = 500


class ModerationBoard:
    """
    Pending moderation reports, read through the shared cache.

    The board subscribes to its query key for as long as it is open, so a
    successful review or delete (which invalidates the key) refetches the
    queue straight away.
    """

    def __init__(
        self,
        cache: QueryCache,
        transport: TransportAdapter,
        dispatcher: Optional[MutationDispatcher] = None,
        *,
        resource: ResourceSpec = MODERATION_REPORTS,
        stale_time: Optional[float] = None,
        retry: Optional[int] = None,
        on_change: Optional[Callable[["ModerationBoard"], None]] = None,
    ):
        self.cache = cache
        self.transport = transport
        self.dispatcher = dispatcher or MutationDispatcher(transport, cache)
        self.resource = resource
        self.stale_time = stale_time
        self.retry = retry
        self.on_change = on_change
        self.key: QueryKey = list_key(resource.name, page_size=QUEUE_WINDOW)
        self._grouper = ReportGrouper()
        self._state: Optional[QueryState] = None
        self._unsubscribe: Optional[Callable[[], None]] = cache.subscribe(self.key, self._on_state)

    def _on_state(self, state: QueryState) -> None:
        if state.cancelled:
            return
        self._state = state
        if self.on_change is not None:
            self.on_change(self)

    async def load(self) -> QueryState:
        """Resolve the queue through the cache."""
        state = await self.cache.resolve(
            self.key,
            list_fetcher(self.transport, self.resource, self.key),
            stale_time=self.stale_time,
            retry=self.retry,
        )
        if not state.cancelled:
            self._state = state
        return state

    async def settle(self) -> Optional[QueryState]:
        """Wait for any refetch of the queue (e.g. after a mutation)."""
        state = await self.cache.settle(self.key)
        if not state.cancelled:
            self._state = state
        return self._state

    @property
    def state(self) -> Optional[QueryState]:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        return self._state.error if self._state is not None else None

    @property
    def result(self) -> Optional[ResultSet]:
        if self._state is None or not isinstance(self._state.data, ResultSet):
            return None
        return self._state.data

    @property
    def raw_reports(self) -> List[dict]:
        result = self.result
        return result.items if result is not None else []

    @property
    def reports(self) -> List[ReportRecord]:
        return [ReportRecord.model_validate(raw) for raw in self.raw_reports]

    @property
    def groups(self) -> List[ReportGroup]:
        return self._grouper(self.raw_reports)

    @property
    def pending_count(self) -> int:
        """Count reported by the server, else the number of reports loaded."""
        result = self.result
        if result is None:
            return 0
        if result.reported_count is not None:
            return result.reported_count
        return len(result.items)

    async def review_report(self, report_id: str) -> ApiResult | _Cancelled:
        """Mark a report reviewed; the queue refetches on success."""
        return await self.dispatcher.mutate(actions.review_report(report_id))

    async def delete_message(self, report_id: str) -> ApiResult | _Cancelled:
        """Delete the reported message; the queue refetches on success."""
        return await self.dispatcher.mutate(actions.delete_reported_message(report_id))

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

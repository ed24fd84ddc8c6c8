"""Write path: perform a mutation, then invalidate the reads it affects."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from adminsync.cache.query_cache import KeyPredicate, QueryCache
from adminsync.transport.adapter import ApiResult, TransportAdapter
from adminsync.transport.cancellation import CancellationToken
from adminsync.transport.errors import CANCELLED, _Cancelled
from adminsync.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MutationAction:
    """
    One write against the backend.

    Attributes:
        resource: Resource name the write belongs to (for logging)
        method: HTTP method (POST, PATCH, PUT, DELETE)
        path: Request path
        body: JSON body, or form fields when files are set
        files: Multipart parts; Content-Type is left to the transport
        invalidates: Predicates selecting cache keys to mark stale on success
        description: Human label, e.g. "mark report as reviewed"
    """

    resource: str
    method: str
    path: str
    body: Any = None
    files: Optional[Dict[str, Any]] = None
    invalidates: List[KeyPredicate] = field(default_factory=list)
    description: str = ""

    def label(self) -> str:
        return self.description or f"{self.method.upper()} {self.path}"


class PendingMutation:
    """
    Handle for one dispatched mutation.

    is_pending stays True until the request settles, so a view can disable the
    control that triggered it. Await the handle for the result.
    """

    def __init__(self, action: MutationAction, task: "asyncio.Task[Union[ApiResult, _Cancelled]]", token: CancellationToken):
        self.action = action
        self._task = task
        self._token = token

    @property
    def is_pending(self) -> bool:
        return not self._task.done()

    @property
    def succeeded(self) -> bool:
        return self._task.done() and not self._task.cancelled() and self._task.exception() is None

    @property
    def error(self) -> Optional[BaseException]:
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()

    def cancel(self) -> None:
        """Discard the outcome. The server may still apply the write."""
        self._token.cancel()

    def __await__(self):
        return self._task.__await__()


class MutationDispatcher:
    """Runs writes through the transport and keeps the cache consistent."""

    def __init__(self, transport: TransportAdapter, cache: QueryCache):
        self.transport = transport
        self.cache = cache

    def dispatch(self, action: MutationAction) -> PendingMutation:
        """Start a mutation on the running loop and return its handle."""
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(action, token))
        return PendingMutation(action, task, token)

    async def mutate(self, action: MutationAction) -> Union[ApiResult, _Cancelled]:
        """
        Perform a write and invalidate affected cache keys.

        Invalidation runs before this coroutine returns, so any read that
        follows a successful write sees the affected keys as stale.

        Returns:
            ApiResult on success, CANCELLED if the handle was cancelled

        Raises:
            ApiError: On failure (never retried; cache left untouched)
        """
        return await self.dispatch(action)

    async def _run(self, action: MutationAction, token: CancellationToken) -> Union[ApiResult, _Cancelled]:
        logger.info(f"Mutation started: {action.label()}")
        try:
            result = await asyncio.to_thread(
                self.transport.request,
                action.method,
                action.path,
                action.body,
                files=action.files,
                cancel_token=token,
            )
        except Exception as e:
            logger.warning(f"Mutation failed: {action.label()}: {e}")
            raise

        if result is CANCELLED:
            logger.debug(f"Mutation cancelled: {action.label()}")
            return CANCELLED

        invalidated = 0
        for predicate in action.invalidates:
            invalidated += self.cache.invalidate(predicate)
        logger.info(f"Mutation succeeded: {action.label()} (invalidated {invalidated} cache entries)")
        return result

"""Pytest configuration and fixtures."""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from adminsync.cache.query_cache import QueryCache
from adminsync.resources.catalog import ResourceSpec
from adminsync.transport.adapter import ApiResult
from adminsync.transport.errors import CANCELLED

# Longest a held request waits before giving up, so a test bug can't hang the run.
HOLD_TIMEOUT_SECONDS = 5.0


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Call:
    method: str
    path: str
    params: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    files: Any = None


class FakeTransport:
    """
    Scripted stand-in for TransportAdapter.

    Routes map (method, path) to a queue of outcomes. Each outcome is either
    the response data, an exception to raise, or a callable taking
    (params, body) that returns either. The last outcome repeats.
    """

    def __init__(self):
        self.calls: List[Call] = []
        self._routes: Dict[Tuple[str, str], List[Any]] = {}
        self._holds: List[Tuple[str, str, Optional[Callable[[Dict[str, Any]], bool]], threading.Event]] = []
        self._lock = threading.Lock()

    def route(self, method: str, path: str, *outcomes: Any) -> None:
        self._routes[(method.upper(), path)] = list(outcomes)

    def hold(
        self,
        method: str,
        path: str,
        when: Optional[Callable[[Dict[str, Any]], bool]] = None,
    ) -> threading.Event:
        """Block matching requests until the returned event is set (or the request is cancelled)."""
        gate = threading.Event()
        self._holds.append((method.upper(), path, when, gate))
        return gate

    def calls_to(self, method: str, path: str) -> List[Call]:
        return [c for c in self.calls if c.method == method.upper() and c.path == path]

    def _next_outcome(self, method: str, path: str) -> Any:
        with self._lock:
            queue = self._routes.get((method, path))
            if not queue:
                raise AssertionError(f"No route for {method} {path}")
            return queue.pop(0) if len(queue) > 1 else queue[0]

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        cancel_token=None,
    ):
        method = method.upper()
        params = dict(params or {})
        with self._lock:
            self.calls.append(Call(method, path, params, body, files))
        if cancel_token is not None and cancel_token.cancelled:
            return CANCELLED

        for hold_method, hold_path, when, gate in self._holds:
            if hold_method != method or hold_path != path or (when is not None and not when(params)):
                continue
            waited = 0.0
            while not gate.wait(0.01):
                waited += 0.01
                if (cancel_token is not None and cancel_token.cancelled) or waited > HOLD_TIMEOUT_SECONDS:
                    break

        if cancel_token is not None and cancel_token.cancelled:
            return CANCELLED

        outcome = self._next_outcome(method, path)
        if callable(outcome) and not isinstance(outcome, type):
            outcome = outcome(params, body)
        if isinstance(outcome, BaseException):
            raise outcome
        return ApiResult(code=200, data=outcome)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Cache with a fake clock and the dashboard's read defaults."""
    return QueryCache(clock=clock, stale_time=120.0, retry=2)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def items_resource():
    """Minimal server-unpaginated resource filtered by status and search."""
    return ResourceSpec(
        name="items",
        path="/api/items",
        item_key="items",
        filters=("status", "search"),
    )


def make_items(count: int, **extra: Any) -> List[Dict[str, Any]]:
    return [{"_id": f"item-{i}", "name": f"Item {i}", **extra} for i in range(1, count + 1)]

"""Normalize list payloads into ResultSet."""

from typing import Any, Callable, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from adminsync.cache.keys import FilterTuple

T = TypeVar("T")

ItemFilter = Callable[[Any, FilterTuple], bool]

GENERIC_ITEM_KEYS = ("items", "data", "results")


class ResultSet(BaseModel, Generic[T]):
    """One page of a list resource."""

    items: List[T] = Field(default_factory=list)
    total: int = Field(0, ge=0)
    page: int = Field(1, ge=1)
    page_size: int = Field(10, ge=1)
    # True when total was counted from a page the server had already cut,
    # so it only covers that page.
    total_is_approximate: bool = False
    # Envelope-level count the server reported alongside the items, if any.
    reported_count: Optional[int] = None


def extract_items(data: Any, item_key: Optional[str] = None) -> tuple[List[Any], Optional[int], bool]:
    """
    Find the item list inside a payload.

    Returns:
        Tuple of (items, server_total, server_paginated)
        - server_total: total the server reported, if any
        - server_paginated: whether the payload carried its own page window
    """
    if data is None:
        return [], None, False
    if isinstance(data, list):
        return data, None, False
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected list payload type: {type(data).__name__}")

    keys = ([item_key] if item_key else []) + list(GENERIC_ITEM_KEYS)
    items: Optional[List[Any]] = None
    for key in keys:
        candidate = data.get(key)
        if isinstance(candidate, list):
            items = candidate
            break
    if items is None:
        raise ValueError(f"No item list found in payload keys {sorted(data)}")

    total = data.get("total", data.get("count"))
    server_total = int(total) if isinstance(total, (int, float)) else None
    server_paginated = "page" in data or "limit" in data
    return items, server_total, server_paginated


def normalize_result_set(
    data: Any,
    *,
    page: int,
    page_size: int,
    filters: Optional[FilterTuple] = None,
    item_key: Optional[str] = None,
    client_filter: Optional[ItemFilter] = None,
    sent_page_window: bool = False,
) -> ResultSet:
    """
    Turn a backend list payload into a ResultSet.

    A server-paginated payload ({items, total, page, limit}) is trusted as is.
    A bare list is filtered locally (when the resource has a client filter and
    any filter is active) and sliced to the requested page. If the request had
    already asked the server for a page window and the list fits in one page,
    the list is taken to be that window: it is not sliced again, and the total
    counted from it only covers that page, so it is marked approximate.

    Args:
        data: ApiResult.data
        page: Requested page (1-based)
        page_size: Requested page size
        filters: Active filters
        item_key: Resource-specific key holding the items
        client_filter: Predicate applied locally for backends that ignore filters
        sent_page_window: Whether page/limit were sent as query parameters

    Returns:
        ResultSet with items no longer than page_size
    """
    filters = filters or FilterTuple()
    items, server_total, server_paginated = extract_items(data, item_key)
    items = [item for item in items if item is not None]

    if server_paginated and server_total is not None:
        return ResultSet(
            items=items[:page_size],
            total=max(server_total, 0),
            page=page,
            page_size=page_size,
            reported_count=server_total,
        )

    filtered = items
    if client_filter is not None and not filters.is_empty():
        filtered = [item for item in items if client_filter(item, filters)]

    already_windowed = sent_page_window and len(items) <= page_size
    if already_windowed:
        window = filtered
    else:
        start = (page - 1) * page_size
        window = filtered[start:start + page_size]
    approximate = already_windowed and server_total is None

    return ResultSet(
        items=window,
        total=len(filtered),
        page=page,
        page_size=page_size,
        total_is_approximate=approximate,
        reported_count=server_total,
    )

"""Cache fetchers that read list and detail resources through the transport.

The transport is blocking (requests), so each call runs in a worker thread
and the event loop stays free while it waits.
"""

import asyncio
from typing import Any, Optional

from adminsync.cache.keys import QueryKey, detail_key
from adminsync.cache.query_cache import Fetcher, QueryCache, QueryState
from adminsync.resources.catalog import ResourceSpec
from adminsync.resources.envelope import normalize_result_set
from adminsync.transport.adapter import TransportAdapter
from adminsync.transport.cancellation import CancellationToken
from adminsync.transport.errors import CANCELLED


def list_fetcher(transport: TransportAdapter, spec: ResourceSpec, key: QueryKey) -> Fetcher:
    """Fetcher producing a ResultSet for one list key."""
    params = spec.query_params(key.filters, key.page, key.page_size)

    async def fetch(token: CancellationToken) -> Any:
        result = await asyncio.to_thread(
            transport.request, "GET", spec.path, params=params, cancel_token=token
        )
        if result is CANCELLED:
            return CANCELLED
        return normalize_result_set(
            result.data,
            page=key.page,
            page_size=key.page_size,
            filters=key.filters,
            item_key=spec.item_key,
            client_filter=spec.client_filter,
            sent_page_window=spec.send_page_window,
        )

    return fetch


def detail_fetcher(transport: TransportAdapter, spec: ResourceSpec, entity_id: str) -> Fetcher:
    """Fetcher producing the single record at spec.path/{entity_id}."""
    path = spec.detail_path(entity_id)

    async def fetch(token: CancellationToken) -> Any:
        result = await asyncio.to_thread(transport.request, "GET", path, cancel_token=token)
        if result is CANCELLED:
            return CANCELLED
        data = result.data
        if spec.detail_key and isinstance(data, dict) and spec.detail_key in data:
            return data[spec.detail_key]
        return data

    return fetch


async def load_entity(
    cache: QueryCache,
    transport: TransportAdapter,
    spec: ResourceSpec,
    entity_id: str,
    *,
    stale_time: Optional[float] = None,
) -> QueryState:
    """Resolve a single record through the cache under its detail key."""
    key = detail_key(spec.name, entity_id)
    return await cache.resolve(key, detail_fetcher(transport, spec, entity_id), stale_time=stale_time)

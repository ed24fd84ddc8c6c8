"""Tests for ListController: filters, paging, cache-driven loading."""

import asyncio

import pytest

from conftest import make_items

from adminsync.cache.keys import FilterTuple, detail_key, list_key
from adminsync.controller.fetchers import load_entity
from adminsync.controller.list_controller import ListController
from adminsync.resources.catalog import USERS
from adminsync.transport.errors import ApiError


def _echo_status(params, body):
    return {"items": [{"_id": params.get("status") or "all"}]}


def test_page_three_of_forty_seven(cache, transport, items_resource):
    transport.route("GET", "/api/items", {"items": make_items(47)})

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        await controller.load()
        controller.set_page(3)
        await controller.settle()
        return controller

    controller = asyncio.run(scenario())

    assert controller.page == 3
    assert controller.start_index == 21
    assert controller.end_index == 30
    assert controller.total_pages == 5
    assert controller.total == 47
    assert [item["_id"] for item in controller.items] == [f"item-{i}" for i in range(21, 31)]
    assert controller.summary.describe() == "Showing 21 to 30 of 47 results"


def test_set_filter_resets_page(cache, transport, items_resource):
    transport.route("GET", "/api/items", {"items": make_items(47)})

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        await controller.load()
        controller.set_page(3)
        controller.set_filter(status="active")
        await controller.settle()
        return controller

    controller = asyncio.run(scenario())

    assert controller.page == 1
    assert controller.key.filters == FilterTuple(status="active")
    assert transport.calls[-1].params == {"status": "active"}


def test_set_page_is_clamped(cache, transport, items_resource):
    transport.route("GET", "/api/items", {"items": make_items(47)})

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        await controller.load()
        controller.set_page(99)
        high = controller.page
        controller.set_page(0)
        low = controller.page
        controller.previous_page()
        await controller.settle()
        return high, low, controller.page

    assert asyncio.run(scenario()) == (5, 1, 1)


def test_set_page_before_any_data_stays_on_first_page(cache, transport, items_resource):
    controller = ListController(items_resource, cache, transport)

    controller.set_page(4)

    assert controller.page == 1
    assert controller.total_pages == 1


def test_set_page_size_resets_page(cache, transport, items_resource):
    transport.route("GET", "/api/items", {"items": make_items(47)})

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        await controller.load()
        controller.set_page(4)
        controller.set_page_size(25)
        await controller.settle()
        return controller

    controller = asyncio.run(scenario())

    assert controller.page == 1
    assert controller.page_size == 25
    assert controller.total_pages == 2
    assert len(controller.items) == 25


def test_unsupported_filter_is_rejected(cache, transport, items_resource):
    controller = ListController(items_resource, cache, transport)

    with pytest.raises(ValueError, match="does not filter on"):
        controller.set_filter(tab="upcoming")


def test_clearing_a_filter_returns_to_unfiltered_key(cache, transport, items_resource):
    controller = ListController(items_resource, cache, transport)
    unfiltered = controller.key

    controller.set_filter(status="active")
    controller.set_filter(status="")

    assert controller.key == unfiltered


def test_superseded_request_is_cancelled(cache, transport, items_resource):
    transport.route("GET", "/api/items", _echo_status)
    transport.hold("GET", "/api/items", when=lambda params: params.get("status") == "slow")
    slow_key = list_key("items", FilterTuple(status="slow"))

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        controller.set_filter(status="slow")
        await asyncio.sleep(0.05)
        controller.set_filter(status="fast")
        await controller.settle()
        return controller

    controller = asyncio.run(scenario())

    assert controller.items == [{"_id": "fast"}]
    assert controller.key.filters.status == "fast"
    assert cache.snapshot(slow_key).has_data is False


def test_late_response_for_old_filter_is_ignored(cache, transport, items_resource):
    transport.route("GET", "/api/items", _echo_status)
    gate = transport.hold("GET", "/api/items", when=lambda params: params.get("status") == "slow")
    slow_key = list_key("items", FilterTuple(status="slow"))

    async def scenario():
        # another view keeps the slow query alive so it is not cancelled
        cache.subscribe(slow_key, lambda state: None)
        controller = ListController(items_resource, cache, transport)
        controller.set_filter(status="slow")
        await asyncio.sleep(0.05)
        controller.set_filter(status="fast")
        await controller.load()
        assert controller.items == [{"_id": "fast"}]

        gate.set()
        await controller.settle()
        await cache.settle(slow_key)
        return controller

    controller = asyncio.run(scenario())

    assert controller.items == [{"_id": "fast"}]
    assert cache.snapshot(slow_key).data.items == [{"_id": "slow"}]


def test_cached_page_is_served_without_network(cache, transport, items_resource):
    transport.route("GET", "/api/items", {"items": make_items(30)})

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        await controller.load()
        controller.next_page()
        await controller.settle()
        controller.previous_page()
        await controller.settle()
        return controller

    controller = asyncio.run(scenario())

    assert len(transport.calls) == 2
    assert controller.items[0]["_id"] == "item-1"


def test_refresh_refetches_fresh_key(cache, transport, items_resource):
    transport.route("GET", "/api/items", {"items": make_items(3)}, {"items": make_items(4)})

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        await controller.load()
        await controller.refresh()
        return controller

    controller = asyncio.run(scenario())

    assert len(transport.calls) == 2
    assert controller.total == 4


def test_load_error_is_exposed_not_raised(cache, transport, items_resource):
    transport.route("GET", "/api/items", ApiError(403, "Admins only"))

    async def scenario():
        controller = ListController(items_resource, cache, transport)
        await controller.load()
        return controller

    controller = asyncio.run(scenario())

    assert controller.error.message == "Admins only"
    assert controller.items == []
    assert len(transport.calls) == 1


def test_on_change_fires_for_applied_results(cache, transport, items_resource):
    transport.route("GET", "/api/items", {"items": make_items(2)})
    changes = []

    async def scenario():
        controller = ListController(items_resource, cache, transport, on_change=changes.append)
        await controller.load()
        return controller

    controller = asyncio.run(scenario())

    assert changes
    assert changes[-1] is controller
    assert controller.total == 2


def test_close_detaches_from_cache(cache, transport, items_resource):
    controller = ListController(items_resource, cache, transport)
    key = controller.key

    controller.close()

    assert cache.subscriber_count(key) == 0
    with pytest.raises(RuntimeError):
        controller.set_page(2)


def test_load_entity_unwraps_detail_record(cache, transport):
    transport.route("GET", "/api/admin/users/u1", {"user": {"_id": "u1", "role": "admin"}})

    state = asyncio.run(load_entity(cache, transport, USERS, "u1"))

    assert state.key == detail_key("users", "u1")
    assert state.data == {"_id": "u1", "role": "admin"}

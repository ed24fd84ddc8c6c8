"""Local filter predicates for list endpoints that ignore query filters.

These mirror the query parameters the backend is meant to honour. They run
only on payloads that came back unfiltered.
"""

from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

from adminsync.cache.keys import FilterTuple
from adminsync.utils.time import parse_iso_utc


def _get(item: Any, *path: str) -> Any:
    current = item
    for part in path:
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _contains(haystacks: Iterable[Optional[str]], needle: str) -> bool:
    needle = needle.lower()
    return any(isinstance(h, str) and needle in h.lower() for h in haystacks)


def _is_date_only(value: str) -> bool:
    return "T" not in value and " " not in value.strip()


def _within_dates(value: Optional[str], filters: FilterTuple) -> bool:
    if not filters.start_date and not filters.end_date:
        return True
    when = parse_iso_utc(value)
    if when is None:
        return False
    start = parse_iso_utc(filters.start_date)
    end = parse_iso_utc(filters.end_date)
    if start is not None and when < start:
        return False
    if end is None:
        return True
    if _is_date_only(filters.end_date):
        # a bare end date includes the whole day
        return when < end + timedelta(days=1)
    return when <= end


def booking_matches(item: Dict[str, Any], filters: FilterTuple) -> bool:
    """Bookings: status, session type, tab, client/therapist name, date."""
    # incomplete rows are dropped, matching what the table can render
    if not (
        item.get("_id")
        and item.get("client")
        and item.get("therapist")
        and item.get("status")
        and item.get("sessionType")
    ):
        return False
    if filters.status and item.get("status") != filters.status:
        return False
    if filters.type and item.get("sessionType") != filters.type:
        return False
    if filters.tab and item.get("tab") != filters.tab:
        return False
    if filters.search and not _contains(
        [_get(item, "client", "name"), _get(item, "therapist", "name")],
        filters.search,
    ):
        return False
    return _within_dates(item.get("date"), filters)


def transaction_matches(item: Dict[str, Any], filters: FilterTuple) -> bool:
    """Transactions: status, type, transaction id / customer name / email, date."""
    if filters.status and item.get("status") != filters.status:
        return False
    if filters.type and item.get("type") != filters.type:
        return False
    if filters.search and not _contains(
        [
            item.get("transactionId"),
            _get(item, "customer", "fullName"),
            _get(item, "customer", "email"),
        ],
        filters.search,
    ):
        return False
    return _within_dates(item.get("date"), filters)


def user_matches(item: Dict[str, Any], filters: FilterTuple) -> bool:
    if filters.type and item.get("role") != filters.type:
        return False
    if filters.status and item.get("status") != filters.status:
        return False
    if filters.search and not _contains([item.get("fullName"), item.get("email")], filters.search):
        return False
    return True


def article_matches(item: Dict[str, Any], filters: FilterTuple) -> bool:
    if filters.type and item.get("category") != filters.type:
        return False
    if filters.search and not _contains([item.get("title"), item.get("author")], filters.search):
        return False
    return True


def status_and_search(*search_fields: str):
    """Predicate for resources filtered only by status and a few text fields."""

    def matches(item: Dict[str, Any], filters: FilterTuple) -> bool:
        if filters.status and item.get("status") != filters.status:
            return False
        if filters.search and not _contains([item.get(f) for f in search_fields], filters.search):
            return False
        return True

    return matches

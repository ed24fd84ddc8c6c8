"""Pagination arithmetic shared by list screens."""

import math
from dataclasses import dataclass
from typing import List, Union

ELLIPSIS = "…"

PageToken = Union[int, str]


@dataclass(frozen=True)
class PageSummary:
    """Derived pagination values for a list view."""

    page: int
    page_size: int
    total: int
    total_pages: int
    start_index: int
    end_index: int
    approximate: bool = False

    def describe(self) -> str:
        suffix = "+" if self.approximate else ""
        return f"Showing {self.start_index} to {self.end_index} of {self.total}{suffix} results"


def total_pages(total: int, page_size: int) -> int:
    return max(1, math.ceil(max(total, 0) / page_size))


def clamp_page(page: int, total: int, page_size: int) -> int:
    return min(max(page, 1), total_pages(total, page_size))


def summarize(page: int, page_size: int, total: int, approximate: bool = False) -> PageSummary:
    """
    Compute start/end indices and page count.

    >>> summarize(3, 10, 47)
    PageSummary(page=3, page_size=10, total=47, total_pages=5, start_index=21, end_index=30, approximate=False)
    """
    return PageSummary(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages(total, page_size),
        start_index=(page - 1) * page_size + 1,
        end_index=min(page * page_size, total),
        approximate=approximate,
    )


def _span(start: int, end: int) -> List[int]:
    return list(range(start, end + 1)) if end >= start else []


def page_tokens(
    total_page_count: int,
    page: int,
    sibling_count: int = 1,
    boundary_count: int = 1,
) -> List[PageToken]:
    """
    Page numbers for a pagination bar, with ELLIPSIS standing in for gaps.

    Boundary pages are always shown, plus sibling_count pages on each side of
    the current page. A gap of exactly one page shows the page instead.

    >>> page_tokens(10, 5)
    [1, '…', 4, 5, 6, '…', 10]
    """
    if total_page_count <= 0:
        return []
    start_pages = _span(1, min(boundary_count, total_page_count))
    end_pages = _span(max(total_page_count - boundary_count + 1, boundary_count + 1), total_page_count)

    siblings_start = max(
        min(page - sibling_count, total_page_count - boundary_count - sibling_count * 2 - 1),
        boundary_count + 2,
    )
    siblings_end = min(
        max(page + sibling_count, boundary_count + sibling_count * 2 + 2),
        end_pages[0] - 2 if end_pages else total_page_count - 1,
    )

    tokens: List[PageToken] = list(start_pages)
    if siblings_start > boundary_count + 2:
        tokens.append(ELLIPSIS)
    elif boundary_count + 1 < total_page_count - boundary_count:
        tokens.append(boundary_count + 1)

    tokens.extend(_span(siblings_start, siblings_end))

    if siblings_end < total_page_count - boundary_count - 1:
        tokens.append(ELLIPSIS)
    elif total_page_count - boundary_count > boundary_count:
        tokens.append(total_page_count - boundary_count)

    tokens.extend(end_pages)
    return tokens

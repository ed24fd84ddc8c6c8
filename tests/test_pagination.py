"""Tests for pagination arithmetic and page tokens."""

import pytest

from adminsync.controller.pagination import ELLIPSIS, clamp_page, page_tokens, summarize, total_pages


def test_summary_for_middle_page():
    summary = summarize(3, 10, 47)

    assert (summary.start_index, summary.end_index, summary.total_pages) == (21, 30, 5)


def test_summary_for_last_partial_page():
    summary = summarize(5, 10, 47)

    assert (summary.start_index, summary.end_index) == (41, 47)


def test_approximate_total_is_marked():
    assert summarize(1, 10, 9, approximate=True).describe() == "Showing 1 to 9 of 9+ results"


@pytest.mark.parametrize(
    "total, expected",
    [(0, 1), (1, 1), (10, 1), (11, 2), (47, 5)],
)
def test_total_pages_never_below_one(total, expected):
    assert total_pages(total, 10) == expected


@pytest.mark.parametrize(
    "page, expected",
    [(-3, 1), (0, 1), (1, 1), (5, 5), (6, 5), (100, 5)],
)
def test_clamp_page(page, expected):
    assert clamp_page(page, 47, 10) == expected


@pytest.mark.parametrize(
    "count, page, expected",
    [
        (1, 1, [1]),
        (3, 1, [1, 2, 3]),
        (7, 1, [1, 2, 3, 4, 5, 6, 7]),
        (10, 1, [1, 2, 3, 4, 5, ELLIPSIS, 10]),
        (10, 5, [1, ELLIPSIS, 4, 5, 6, ELLIPSIS, 10]),
        (10, 10, [1, ELLIPSIS, 6, 7, 8, 9, 10]),
    ],
)
def test_page_tokens(count, page, expected):
    assert page_tokens(count, page) == expected


def test_page_tokens_empty():
    assert page_tokens(0, 1) == []

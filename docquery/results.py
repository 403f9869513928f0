# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Query results and the data/count fetch shared by both query modes."""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from .pagination import PaginationResult


@dataclass(frozen=True)
class QueryResult:
    """One page of records with its pagination metadata."""
    data: list[dict[str, Any]]
    pagination: PaginationResult | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "pagination": self.pagination.to_dict() if self.pagination else None,
        }


def fetch_with_count(
    fetch: Callable[[], list[dict[str, Any]]],
    count: Callable[[], int],
    concurrent: bool = True,
) -> tuple[list[dict[str, Any]], int]:
    """Run the data fetch and the count fetch.

    The two calls do not depend on each other, so they run on two worker
    threads when ``concurrent`` is set. Exceptions from either call are
    re-raised unchanged.

    Returns:
        Tuple of (records, total)
    """
    if not concurrent:
        return fetch(), count()

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="docquery") as executor:
        data_future = executor.submit(fetch)
        total_future = executor.submit(count)
        return data_future.result(), total_future.result()

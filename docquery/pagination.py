# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Pagination math for query results.

Pure functions only: the same inputs always give the same output.
"""

import math
import re
from dataclasses import dataclass
from typing import Any

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class PaginationRequest:
    """Effective page window after defaulting and clamping.

    Attributes:
        page: 1-based page number
        limit: Page size, never above the configured maximum
        skip: Number of records to skip before the page starts
    """
    page: int
    limit: int
    skip: int


@dataclass(frozen=True)
class PaginationResult:
    """Pagination metadata attached to a page of records.

    Only ``page``, ``limit`` and ``total`` are stored. The derived values are
    recomputed on every access so they can never drift from their inputs.
    """
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def to_dict(self) -> dict[str, Any]:
        """Render the metadata with the keys API clients expect."""
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


def parse_positive_int(value: Any, default: int) -> int:
    """Parse an integer the way query strings are usually read.

    Accepts ints and strings with a leading integer ("20", "20abc").
    Booleans, non-numeric values and anything below 1 give ``default``.

    Args:
        value: Raw value (str, int, float or None)
        default: Value to use when parsing fails

    Returns:
        Parsed integer >= 1, or default
    """
    if isinstance(value, bool) or value is None:
        return default

    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return default
        parsed = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return default
        parsed = int(match.group(1))

    return parsed if parsed >= 1 else default


def resolve_pagination(
    page: Any = None,
    limit: Any = None,
    *,
    default_page: int = DEFAULT_PAGE,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> PaginationRequest:
    """Turn raw page/limit input into an effective page window.

    Args:
        page: Raw page number
        limit: Raw page size
        default_page: Page used for missing or invalid input
        default_limit: Page size used for missing or invalid input
        max_limit: Upper bound for the page size

    Returns:
        PaginationRequest with clamped limit and matching skip
    """
    effective_page = parse_positive_int(page, default_page)
    effective_limit = min(parse_positive_int(limit, default_limit), max_limit)
    return PaginationRequest(
        page=effective_page,
        limit=effective_limit,
        skip=(effective_page - 1) * effective_limit,
    )


def calculate_pagination(page: int, limit: int, total: int) -> PaginationResult:
    """Build pagination metadata for a page of a result set."""
    return PaginationResult(page=page, limit=limit, total=total)

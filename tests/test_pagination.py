# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Tests for pagination math."""

import pytest
from hypothesis import given, settings, strategies as st

from docquery.pagination import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    MAX_LIMIT,
    PaginationResult,
    calculate_pagination,
    parse_positive_int,
    resolve_pagination,
)


class TestResolvePagination:
    """Tests for defaulting and clamping raw page/limit input."""

    def test_defaults_when_missing(self):
        request = resolve_pagination()

        assert request.page == 1
        assert request.limit == 10
        assert request.skip == 0

    def test_parses_strings(self):
        request = resolve_pagination("2", "5")

        assert request.page == 2
        assert request.limit == 5
        assert request.skip == 5

    @pytest.mark.parametrize("limit", ["101", 250, "1000"])
    def test_limit_is_clamped_to_maximum(self, limit):
        """Test that limits above 100 are clamped."""
        assert resolve_pagination(1, limit).limit == 100

    @pytest.mark.parametrize("limit", ["abc", "", None, 0, "0", -3, "-3"])
    def test_invalid_limit_defaults(self, limit):
        assert resolve_pagination(1, limit).limit == 10

    @pytest.mark.parametrize("page", ["abc", "", None, 0, "-1"])
    def test_invalid_page_defaults(self, page):
        assert resolve_pagination(page, 10).page == 1

    def test_skip_uses_clamped_limit(self):
        """Test that skip is computed from the effective limit."""
        request = resolve_pagination(3, 500)

        assert request.limit == 100
        assert request.skip == 200

    def test_custom_defaults(self):
        request = resolve_pagination(None, None, default_page=2, default_limit=20, max_limit=50)

        assert request.page == 2
        assert request.limit == 20
        assert request.skip == 20

    def test_leading_integer_is_used(self):
        assert parse_positive_int("12abc", 1) == 12
        assert parse_positive_int(" 7 ", 1) == 7

    def test_booleans_are_not_numbers(self):
        assert parse_positive_int(True, 10) == 10


class TestCalculatePagination:
    """Tests for pagination metadata."""

    def test_scenario_second_page(self):
        result = calculate_pagination(2, 5, 12)

        assert result.to_dict() == {
            "page": 2,
            "limit": 5,
            "total": 12,
            "pages": 3,
            "hasNext": True,
            "hasPrev": True,
        }

    def test_last_page(self):
        result = calculate_pagination(3, 5, 12)

        assert result.has_next is False
        assert result.has_prev is True

    def test_empty_result(self):
        result = calculate_pagination(1, 10, 0)

        assert result.pages == 0
        assert result.has_next is False
        assert result.has_prev is False

    def test_zero_limit_guard(self):
        """Test the degenerate zero-limit case does not divide by zero."""
        result = calculate_pagination(1, 0, 0)

        assert result.pages == 0
        assert result.has_next is False

    @given(
        page=st.integers(min_value=1, max_value=10**6),
        limit=st.integers(min_value=1, max_value=MAX_LIMIT),
        total=st.integers(min_value=0, max_value=10**9),
    )
    @settings(max_examples=200)
    def test_derived_fields(self, page, limit, total):
        result = calculate_pagination(page, limit, total)

        assert result.pages == -(-total // limit)
        assert result.has_next == (page * limit < total)
        assert result.has_prev == (page > 1)

    def test_idempotent(self):
        assert calculate_pagination(4, 25, 301) == calculate_pagination(4, 25, 301)
        assert calculate_pagination(4, 25, 301).to_dict() == calculate_pagination(4, 25, 301).to_dict()

    def test_derived_fields_are_not_stored(self):
        """Test that only page, limit and total are dataclass fields."""
        assert set(PaginationResult.__dataclass_fields__) == {"page", "limit", "total"}


raw_values = st.none() | st.booleans() | st.integers() | st.text() | st.integers().map(str) | st.floats()


class TestResolvePaginationProperties:
    """Properties of defaulting and clamping that hold for any raw input."""

    @given(page=raw_values, limit=raw_values)
    @settings(max_examples=300)
    def test_window_is_always_valid(self, page, limit):
        request = resolve_pagination(page, limit)

        assert request.page >= 1
        assert 1 <= request.limit <= MAX_LIMIT
        assert request.skip == (request.page - 1) * request.limit

    @given(limit=st.integers(min_value=MAX_LIMIT + 1))
    @settings(max_examples=100)
    def test_large_limits_clamp(self, limit):
        assert resolve_pagination(1, limit).limit == MAX_LIMIT
        assert resolve_pagination(1, str(limit)).limit == MAX_LIMIT

    @given(value=st.integers(max_value=0))
    @settings(max_examples=100)
    def test_non_positive_values_use_defaults(self, value):
        request = resolve_pagination(value, value)

        assert request.page == DEFAULT_PAGE
        assert request.limit == DEFAULT_LIMIT

    @given(page=st.integers(min_value=1, max_value=10**6), limit=st.integers(min_value=1, max_value=MAX_LIMIT))
    @settings(max_examples=100)
    def test_valid_strings_parse_like_integers(self, page, limit):
        assert resolve_pagination(str(page), str(limit)) == resolve_pagination(page, limit)

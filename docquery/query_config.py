# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Whitelist-aware typed filters and a fluent search builder."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .config import DEFAULT_CONFIG, QueryEngineConfig
from .expressions import (
    MATCH_ALL,
    Condition,
    FilterExpression,
    Operator,
    SortDirection,
    SortField,
    SortSpec,
    TextSearch,
    conjoin,
    disjoin,
)
from .filter_translator import DEFAULT_REGEX_OPTIONS, parse_iso_datetime
from .identifiers import DEFAULT_ID_CODEC, IdCodec
from .pagination import resolve_pagination

logger = logging.getLogger(__name__)

# Scalar comparison operators a number or date item may name
_ITEM_OPERATORS = {
    op.value: op
    for op in (Operator.EQ, Operator.NE, Operator.GT, Operator.GTE, Operator.LT, Operator.LTE)
}


@dataclass(frozen=True)
class QueryPlan:
    """Result of ``QueryConfig.build``: a filter plus sort and page window."""
    filter: FilterExpression
    sort: SortSpec
    page: int
    limit: int
    skip: int
    timezone: str


def _to_id_or_str(value: Any, codec: IdCodec) -> Any:
    if codec.is_valid_id(value):
        return codec.to_id(value)
    return str(value)


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return parse_iso_datetime(value)
    return None


def _item_operator(raw: Any, default: Operator = Operator.EQ) -> Operator:
    if not raw:
        return default
    return _ITEM_OPERATORS.get(str(raw).lower(), default)


class QueryConfig:
    """Builds query plans from typed filter descriptors.

    Each ``query_data`` item is a mapping::

        {"name": "status", "value": "active", "type": "select", "operator": "eq"}

    where ``type`` is one of select, number, date, array, exists or range.
    """

    @staticmethod
    def build(
        q: str = "",
        query_data: Iterable[Mapping[str, Any]] = (),
        page: Any = 1,
        limit: Any = None,
        sort_by: str | None = None,
        sort_order: str = "desc",
        regex_fields: Sequence[str] = (),
        allowed_fields: Iterable[str] = (),
        timezone: str | None = None,
        *,
        config: QueryEngineConfig | None = None,
        id_codec: IdCodec | None = None,
    ) -> QueryPlan:
        """Build a query plan.

        Args:
            q: Global search keyword, matched case-insensitively on regex_fields
            query_data: Typed filter items
            page: Raw page number
            limit: Raw page size
            sort_by: Field to sort on (defaults to the creation timestamp)
            sort_order: "asc" or "desc"
            regex_fields: Fields searched by ``q``
            allowed_fields: Whitelist of filterable names; empty allows all
            timezone: Time zone name passed through to the caller

        Returns:
            QueryPlan
        """
        config = config or DEFAULT_CONFIG
        codec = id_codec or DEFAULT_ID_CODEC
        allowed = set(allowed_fields)

        clauses: list[FilterExpression] = []

        if q and regex_fields:
            clauses.append(disjoin(*(
                Condition(field, Operator.REGEX, q, options=DEFAULT_REGEX_OPTIONS)
                for field in regex_fields
            )))

        for item in query_data:
            name = item.get("name")
            value = item.get("value")
            if not name or value is None or value == "":
                continue
            if allowed and name not in allowed:
                logger.debug("Skipping filter on non-whitelisted field %r", name)
                continue

            clause = QueryConfig._build_clause(name, value, item.get("type"), item.get("operator"), codec)
            if clause is not None:
                clauses.append(clause)

        request = resolve_pagination(
            page,
            limit,
            default_page=config.default_page,
            default_limit=config.default_limit,
            max_limit=config.max_limit,
        )
        direction = SortDirection.DESCENDING if sort_order == "desc" else SortDirection.ASCENDING

        return QueryPlan(
            filter=conjoin(*clauses),
            sort=(SortField(sort_by or config.created_at_field, direction),),
            page=request.page,
            limit=request.limit,
            skip=request.skip,
            timezone=timezone or config.timezone,
        )

    @staticmethod
    def _build_clause(
        name: str, value: Any, kind: Any, operator: Any, codec: IdCodec
    ) -> FilterExpression | None:
        if kind == "select":
            if isinstance(value, (list, tuple)):
                return Condition(name, Operator.IN, tuple(_to_id_or_str(v, codec) for v in value))
            return Condition(name, Operator.EQ, _to_id_or_str(value, codec))

        if kind == "number":
            number = _to_number(value)
            if number is None:
                logger.debug("Skipping non-numeric value %r for %r", value, name)
                return None
            return Condition(name, _item_operator(operator), number)

        if kind == "date":
            moment = _to_datetime(value)
            if moment is None:
                logger.debug("Skipping invalid date %r for %r", value, name)
                return None
            return Condition(name, _item_operator(operator), moment)

        if kind == "array":
            values = tuple(value) if isinstance(value, (list, tuple)) else (value,)
            op = Operator.NIN if operator == "nin" else Operator.IN
            return Condition(name, op, values)

        if kind == "exists":
            return Condition(name, Operator.EXISTS, bool(value))

        if kind == "range":
            if isinstance(value, (list, tuple)) and len(value) == 2:
                return conjoin(
                    Condition(name, Operator.GTE, value[0]),
                    Condition(name, Operator.LTE, value[1]),
                )
            return None

        logger.debug("Skipping filter %r with unknown type %r", name, kind)
        return None

    @staticmethod
    def to_object_id(value: Any, codec: IdCodec | None = None) -> Any:
        """Convert to a native identifier when valid, else to a string."""
        return _to_id_or_str(value, codec or DEFAULT_ID_CODEC)


class SearchBuilder:
    """Fluent builder for ad-hoc search filters.

    Example:
        >>> expr = (
        ...     SearchBuilder()
        ...     .text("phone", fields=["name", "description"])
        ...     .range("price", 100, 500)
        ...     .in_("category", ["electronics", "mobile"])
        ...     .build()
        ... )
    """

    def __init__(self):
        self._clauses: dict[str, FilterExpression] = {}
        self._text_alternatives: list[FilterExpression] = []
        self._text_search: TextSearch | None = None

    def text(self, term: str | None, fields: Sequence[str] = ()) -> "SearchBuilder":
        """Search a term in specific fields (regex) or with full-text search."""
        if not term:
            return self
        if fields:
            self._text_alternatives.extend(
                Condition(field, Operator.REGEX, term, options=DEFAULT_REGEX_OPTIONS)
                for field in fields
            )
        else:
            self._text_search = TextSearch(term)
        return self

    def range(self, field: str, minimum: Any = None, maximum: Any = None) -> "SearchBuilder":
        if not field:
            return self
        bounds = []
        if minimum is not None:
            bounds.append(Condition(field, Operator.GTE, minimum))
        if maximum is not None:
            bounds.append(Condition(field, Operator.LTE, maximum))
        if bounds:
            self._clauses[field] = conjoin(*bounds)
        return self

    def date_range(self, field: str, start: Any = None, end: Any = None) -> "SearchBuilder":
        """Restrict a field to a date range; invalid dates are ignored."""
        if not field:
            return self
        bounds = []
        start_at = _to_datetime(start) if start else None
        end_at = _to_datetime(end) if end else None
        if start_at is not None:
            bounds.append(Condition(field, Operator.GTE, start_at))
        if end_at is not None:
            bounds.append(Condition(field, Operator.LTE, end_at))
        if bounds:
            self._clauses[field] = conjoin(*bounds)
        return self

    def in_(self, field: str, values: Sequence[Any] | None) -> "SearchBuilder":
        if not field or not isinstance(values, (list, tuple)) or not values:
            return self
        self._clauses[field] = Condition(field, Operator.IN, tuple(values))
        return self

    def equals(self, field: str, value: Any = None) -> "SearchBuilder":
        if not field or value is None:
            return self
        self._clauses[field] = Condition(field, Operator.EQ, value)
        return self

    def build(self) -> FilterExpression:
        parts: list[FilterExpression] = list(self._clauses.values())
        if self._text_alternatives:
            parts.append(disjoin(*self._text_alternatives))
        if self._text_search is not None:
            parts.append(self._text_search)
        if not parts:
            return MATCH_ALL
        return conjoin(*parts)

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Translate query-string mappings into typed filter expressions.

Example:
    >>> translate_query({"status": "active,pending", "price": {"gte": "10"}})
    And(children=(Condition(field='status', operator=<Operator.IN: 'in'>, ...

Translation never rejects input. Unknown operator keys degrade to literal
equality on the dotted sub-path, identifier-like strings that are not valid
identifiers stay strings, and an empty mapping gives ``MATCH_ALL``.
"""

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from .config import RESERVED_KEYS
from .expressions import (
    DEFAULT_CREATED_AT_FIELD,
    RANGE_OPERATORS,
    SET_OPERATORS,
    Condition,
    FilterExpression,
    Operator,
    SortDirection,
    SortField,
    SortSpec,
    TextSearch,
    conjoin,
    default_sort,
)
from .identifiers import IdCodec, coerce_identifier

logger = logging.getLogger(__name__)

# Keys recognised inside an operator mapping such as {"gte": 10, "lte": 20}
OPERATOR_KEYS = frozenset({"gte", "gt", "lte", "lt", "in", "nin", "ne", "regex"})

DEFAULT_REGEX_OPTIONS = "i"
LIST_DELIMITER = ","

_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_INTEGER = re.compile(r"^[+-]?\d+$")
_ISO_DATE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[Tt ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:[Zz]|[+-]\d{2}:?\d{2})?)?$"
)
_FRACTION = re.compile(r"\.(\d+)")
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")
_TOKEN_SPLIT = re.compile(r"[,\s]+")
_DESCENDING_WORDS = frozenset({"desc", "descending"})


def split_control_keys(
    query: Mapping[str, Any] | None,
    reserved_keys: tuple[str, ...] = RESERVED_KEYS,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate reserved control keys from filter fields.

    Returns:
        Tuple of (controls, filters)
    """
    controls: dict[str, Any] = {}
    filters: dict[str, Any] = {}
    for key, value in (query or {}).items():
        if key in reserved_keys:
            controls[key] = value
        else:
            filters[key] = value
    return controls, filters


def parse_iso_datetime(value: str) -> datetime | None:
    """Parse an ISO-8601 date or date-time string.

    Aware values are converted to UTC and returned naive, which is how the
    MongoDB driver hands datetimes back by default.

    Returns:
        datetime, or None if the string is not an ISO-8601 date
    """
    text = value.strip()
    if not _ISO_DATE.match(text):
        return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    # Older fromisoformat only takes 3 or 6 fraction digits and +HH:MM offsets
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    text = text[:10] + _COMPACT_OFFSET.sub(r"\1:\2", text[10:])
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError):
        return None
    return parsed


def coerce_scalar(field: str, value: Any, id_codec: IdCodec | None = None) -> Any:
    """Apply identifier and boolean coercion to a single raw value."""
    if not isinstance(value, str):
        return value

    coerced = coerce_identifier(field, value, id_codec)
    if coerced is not value:
        return coerced

    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def coerce_range_value(value: Any) -> Any:
    """Convert numeric and ISO-8601 date strings used with range operators."""
    if not isinstance(value, str):
        return value

    text = value.strip()
    if _INTEGER.match(text):
        return int(text)
    if _NUMBER.match(text):
        return float(text)

    parsed = parse_iso_datetime(text)
    if parsed is not None:
        return parsed
    return value


def _coerce_set(field: str, value: Any, id_codec: IdCodec | None) -> tuple[Any, ...]:
    if isinstance(value, str):
        items = value.split(LIST_DELIMITER)
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        items = [value]
    return tuple(coerce_scalar(field, item, id_codec) for item in items)


def _translate_operator_mapping(
    field: str, clause: Mapping[str, Any], id_codec: IdCodec | None
) -> list[FilterExpression]:
    conditions: list[FilterExpression] = []
    has_regex = "regex" in clause

    for key, raw in clause.items():
        if key in OPERATOR_KEYS:
            operator = Operator(key)
            if operator in SET_OPERATORS:
                conditions.append(Condition(field, operator, _coerce_set(field, raw, id_codec)))
            elif operator in RANGE_OPERATORS:
                conditions.append(Condition(field, operator, coerce_range_value(raw)))
            elif operator is Operator.REGEX:
                options = clause.get("options") or DEFAULT_REGEX_OPTIONS
                conditions.append(Condition(field, operator, str(raw), options=str(options)))
            else:
                conditions.append(Condition(field, operator, coerce_scalar(field, raw, id_codec)))
        elif key == "options" and has_regex:
            continue
        else:
            # Unknown operator keys become equality on the sub-path.
            path = f"{field}.{key}"
            logger.debug("Unrecognized operator key %r on %r, using equality on %r", key, field, path)
            conditions.append(Condition(path, Operator.EQ, coerce_scalar(path, raw, id_codec)))

    return conditions


def translate_field(field: str, value: Any, id_codec: IdCodec | None = None) -> list[FilterExpression]:
    """Translate one raw field/value pair into predicates."""
    if isinstance(value, Mapping):
        if not value:
            # An empty operator mapping is a literal empty-document match
            return [Condition(field, Operator.EQ, {})]
        return _translate_operator_mapping(field, value, id_codec)

    if isinstance(value, (list, tuple)):
        return [Condition(field, Operator.IN, _coerce_set(field, value, id_codec))]

    if isinstance(value, str) and LIST_DELIMITER in value:
        return [Condition(field, Operator.IN, _coerce_set(field, value, id_codec))]

    return [Condition(field, Operator.EQ, coerce_scalar(field, value, id_codec))]


def translate_query(
    query: Mapping[str, Any] | None,
    *,
    id_codec: IdCodec | None = None,
    reserved_keys: tuple[str, ...] = RESERVED_KEYS,
) -> FilterExpression:
    """Translate a raw query mapping into a filter expression.

    Args:
        query: Raw field -> value mapping, usually a parsed query string
        id_codec: Identifier codec; defaults to MongoDB ObjectIds
        reserved_keys: Control keys to leave out of the filter

    Returns:
        FilterExpression (``MATCH_ALL`` when nothing filters)
    """
    controls, filters = split_control_keys(query, reserved_keys)

    clauses: list[FilterExpression] = []
    for field, value in filters.items():
        clauses.extend(translate_field(field, value, id_codec))

    search = controls.get("search")
    if "search" in reserved_keys and search not in (None, ""):
        clauses.append(TextSearch(str(search)))

    expression = conjoin(*clauses)
    logger.debug("Translated query %s into %s", filters, expression)
    return expression


def _split_tokens(raw: Any) -> list[str]:
    if isinstance(raw, str):
        values = [raw]
    elif isinstance(raw, (list, tuple)):
        values = [str(item) for item in raw]
    else:
        values = [str(raw)]

    tokens = []
    for value in values:
        tokens.extend(token for token in _TOKEN_SPLIT.split(value.strip()) if token)
    return tokens


def _parse_direction(raw: str) -> SortDirection:
    text = raw.strip().lower()
    if text in _DESCENDING_WORDS:
        return SortDirection.DESCENDING
    try:
        return SortDirection.DESCENDING if int(text) < 0 else SortDirection.ASCENDING
    except ValueError:
        return SortDirection.ASCENDING


def parse_sort(raw: Any, default_field: str = DEFAULT_CREATED_AT_FIELD) -> SortSpec:
    """Parse a sort control value.

    Accepted forms: ``"createdAt:-1,name:1"``, ``"name:asc"``,
    ``"-createdAt,name"``. Missing or empty input sorts by the creation
    timestamp, newest first.
    """
    if raw is None:
        return default_sort(default_field)

    fields = []
    for token in _split_tokens(raw):
        if ":" in token:
            name, _, direction = token.partition(":")
            fields.append(SortField(name, _parse_direction(direction)))
        elif token.startswith("-"):
            fields.append(SortField(token[1:], SortDirection.DESCENDING))
        elif token.startswith("+"):
            fields.append(SortField(token[1:], SortDirection.ASCENDING))
        else:
            fields.append(SortField(token, SortDirection.ASCENDING))

    fields = [f for f in fields if f.field]
    if not fields:
        return default_sort(default_field)
    return tuple(fields)


def parse_fields(raw: Any) -> dict[str, int] | None:
    """Parse a field selection such as ``"name,price"`` or ``"-password"``.

    Returns:
        Projection mapping (1 = include, 0 = exclude), or None when empty
    """
    if raw is None:
        return None

    projection: dict[str, int] = {}
    for token in _split_tokens(raw):
        if token.startswith("-"):
            if token[1:]:
                projection[token[1:]] = 0
        else:
            projection[token.lstrip("+")] = 1
    return projection or None

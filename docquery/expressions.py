# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Typed filter expressions and sort specifications.

Filters are trees of leaves (``Condition``, ``TextSearch``) joined by ``And``
and ``Or`` combinators. Storage drivers decide how to run them; see
``docquery.storage.mongo_compiler`` for the MongoDB rendering.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Union


class Operator(str, Enum):
    """Comparison operators a leaf predicate can use."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    REGEX = "regex"
    EXISTS = "exists"


RANGE_OPERATORS = frozenset({Operator.GT, Operator.GTE, Operator.LT, Operator.LTE})
SET_OPERATORS = frozenset({Operator.IN, Operator.NIN})


@dataclass(frozen=True)
class Condition:
    """Leaf predicate comparing one field against a value.

    Attributes:
        field: Dotted field path
        operator: Comparison operator
        value: Already-coerced comparison value
        options: Regex flags, only meaningful for ``Operator.REGEX``
    """
    field: str
    operator: Operator
    value: Any
    options: str | None = None

    def __post_init__(self):
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))


@dataclass(frozen=True)
class TextSearch:
    """Full-text search predicate."""
    term: str


@dataclass(frozen=True)
class And:
    """Conjunction. ``And(())`` matches every record."""
    children: tuple["FilterExpression", ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "children", tuple(self.children))


@dataclass(frozen=True)
class Or:
    """Disjunction of child expressions."""
    children: tuple["FilterExpression", ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "children", tuple(self.children))


FilterExpression = Union[Condition, TextSearch, And, Or]

MATCH_ALL = And(())


def is_match_all(expr: FilterExpression | None) -> bool:
    """Return True if the expression places no restriction on records."""
    if expr is None:
        return True
    if isinstance(expr, And):
        return all(is_match_all(child) for child in expr.children)
    return False


def conjoin(*exprs: FilterExpression | None) -> FilterExpression:
    """AND expressions together.

    Nested conjunctions are flattened and always-true parts dropped, so the
    result of combining nothing is ``MATCH_ALL`` and combining a single
    expression returns it unchanged.
    """
    children: list[FilterExpression] = []
    for expr in exprs:
        if is_match_all(expr):
            continue
        if isinstance(expr, And):
            children.extend(c for c in expr.children if not is_match_all(c))
        else:
            children.append(expr)

    if not children:
        return MATCH_ALL
    if len(children) == 1:
        return children[0]
    return And(tuple(children))


def disjoin(*exprs: FilterExpression) -> FilterExpression:
    """OR expressions together, flattening nested disjunctions."""
    children: list[FilterExpression] = []
    for expr in exprs:
        if isinstance(expr, Or):
            children.extend(expr.children)
        else:
            children.append(expr)

    if len(children) == 1:
        return children[0]
    return Or(tuple(children))


class SortDirection(IntEnum):
    ASCENDING = 1
    DESCENDING = -1


@dataclass(frozen=True)
class SortField:
    field: str
    direction: SortDirection = SortDirection.ASCENDING


SortSpec = tuple[SortField, ...]

DEFAULT_CREATED_AT_FIELD = "createdAt"


def default_sort(created_at_field: str = DEFAULT_CREATED_AT_FIELD) -> SortSpec:
    """Newest records first."""
    return (SortField(created_at_field, SortDirection.DESCENDING),)

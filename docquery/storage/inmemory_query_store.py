# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""In-memory query store for testing and local development."""

import copy
import functools
import logging
import operator
import re
import uuid
from collections import defaultdict
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from bson import ObjectId

from ..expressions import (
    And,
    Condition,
    FilterExpression,
    Operator,
    Or,
    SortSpec,
    TextSearch,
)
from ..stages import ComputeFields, Join, Match, PipelineStage, Project, Sort, Window
from .query_store import QueryStore

logger = logging.getLogger(__name__)

_MISSING = object()

_RANGE_OPS = {
    Operator.GT: operator.gt,
    Operator.GTE: operator.ge,
    Operator.LT: operator.lt,
    Operator.LTE: operator.le,
}

_COMPARISON_EXPRESSIONS = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}

_WORD = re.compile(r"\w+")


class InMemorySession:
    """Session handle returned by ``InMemoryQueryStore.start_session``."""

    def __init__(self):
        self.session_id = str(uuid.uuid4())
        self.ended = False

    def end_session(self) -> None:
        self.ended = True

    def __enter__(self) -> "InMemorySession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end_session()


def _get_path(doc: Any, path: str) -> Any:
    """Resolve a dotted path, fanning out over arrays like MongoDB does."""
    current = doc
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list):
            if part.isdigit():
                index = int(part)
                if index >= len(current):
                    return _MISSING
                current = current[index]
            else:
                found = [_get_path(item, part) for item in current]
                found = [item for item in found if item is not _MISSING]
                if not found:
                    return _MISSING
                current = found
        else:
            return _MISSING
    return current


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def _pop_path(doc: dict[str, Any], path: str) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.get(part)
        if not isinstance(target, dict):
            return
    target.pop(parts[-1], None)


def _candidates(value: Any) -> list[Any]:
    """Values a predicate is tested against: an array and each of its elements."""
    if isinstance(value, list):
        return [value, *value]
    return [value]


def _values_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(right, tuple):
        right = list(right)
    return left == right


def _comparable(left: Any, right: Any) -> bool:
    numeric = (int, float)
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    if isinstance(left, numeric) and isinstance(right, numeric):
        return True
    for kind in (str, datetime, ObjectId):
        if isinstance(left, kind) and isinstance(right, kind):
            return True
    return False


def _matches_equality(value: Any, target: Any) -> bool:
    if value is _MISSING:
        return target is None
    return any(_values_equal(candidate, target) for candidate in _candidates(value))


def _compile_regex(pattern: str, options: str | None) -> re.Pattern:
    flags = 0
    for flag in options or "":
        flags |= _REGEX_FLAGS.get(flag, 0)
    return re.compile(pattern, flags)


def _collect_strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        return [s for item in value.values() for s in _collect_strings(item)]
    if isinstance(value, list):
        return [s for item in value for s in _collect_strings(item)]
    return []


def matches(doc: dict[str, Any], expr: FilterExpression | None) -> bool:
    """Evaluate a filter expression against one document."""
    if expr is None:
        return True

    if isinstance(expr, And):
        return all(matches(doc, child) for child in expr.children)

    if isinstance(expr, Or):
        return any(matches(doc, child) for child in expr.children)

    if isinstance(expr, TextSearch):
        terms = set(_WORD.findall(expr.term.lower()))
        if not terms:
            return False
        words = set()
        for text in _collect_strings(doc):
            words.update(_WORD.findall(text.lower()))
        return bool(terms & words)

    if isinstance(expr, Condition):
        return _matches_condition(doc, expr)

    raise TypeError(f"Unsupported filter expression: {expr!r}")


def _matches_condition(doc: dict[str, Any], condition: Condition) -> bool:
    value = _get_path(doc, condition.field)
    op = condition.operator

    if op is Operator.EQ:
        return _matches_equality(value, condition.value)
    if op is Operator.NE:
        return not _matches_equality(value, condition.value)
    if op is Operator.IN:
        return any(_matches_equality(value, item) for item in condition.value)
    if op is Operator.NIN:
        return not any(_matches_equality(value, item) for item in condition.value)
    if op is Operator.EXISTS:
        return (value is not _MISSING) == bool(condition.value)
    if op is Operator.REGEX:
        if value is _MISSING:
            return False
        pattern = _compile_regex(condition.value, condition.options)
        return any(isinstance(c, str) and pattern.search(c) for c in _candidates(value))
    if op in _RANGE_OPS:
        if value is _MISSING:
            return False
        compare = _RANGE_OPS[op]
        return any(
            _comparable(c, condition.value) and compare(c, condition.value)
            for c in _candidates(value)
        )

    raise TypeError(f"Unsupported operator: {op!r}")


def _type_rank(value: Any) -> int:
    # Mirrors MongoDB's cross-type sort order for the types used here
    if value is _MISSING or value is None:
        return 0
    if isinstance(value, bool):
        return 8
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    if isinstance(value, dict):
        return 3
    if isinstance(value, list):
        return 4
    if isinstance(value, ObjectId):
        return 7
    if isinstance(value, datetime):
        return 9
    return 10


def _compare_values(left: Any, right: Any) -> int:
    left_rank, right_rank = _type_rank(left), _type_rank(right)
    if left_rank != right_rank:
        return -1 if left_rank < right_rank else 1
    if left_rank in (0, 3, 4, 10):
        return 0
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def sort_documents(docs: list[dict[str, Any]], spec: SortSpec | None) -> list[dict[str, Any]]:
    """Stable multi-key sort, missing values first when ascending."""
    if not spec:
        return list(docs)

    def compare(left: dict[str, Any], right: dict[str, Any]) -> int:
        for item in spec:
            result = _compare_values(_get_path(left, item.field), _get_path(right, item.field))
            if result:
                return result * int(item.direction)
        return 0

    return sorted(docs, key=functools.cmp_to_key(compare))


def evaluate_expression(expr: Any, doc: dict[str, Any]) -> Any:
    """Evaluate a subset of MongoDB aggregation expressions against a document.

    Supports field references (``"$a.b"``), object and array literals, and the
    operators $concat, $eq, $ne, $gt, $gte, $lt, $lte, $ifNull, $size, $add,
    $subtract, $multiply, $toUpper, $toLower, $arrayElemAt and $literal.
    Unsupported operators are logged and evaluate to None.
    """
    if isinstance(expr, str) and expr.startswith("$"):
        return _get_path(doc, expr[1:])

    if isinstance(expr, list):
        return [_present(evaluate_expression(item, doc)) for item in expr]

    if isinstance(expr, Mapping):
        if len(expr) == 1:
            name = next(iter(expr))
            if name.startswith("$"):
                return _evaluate_operator(name, expr[name], doc)
        return {
            key: _present(evaluate_expression(value, doc))
            for key, value in expr.items()
        }

    return expr


def _present(value: Any) -> Any:
    return None if value is _MISSING else value


def _evaluate_operator(name: str, args: Any, doc: dict[str, Any]) -> Any:
    if name == "$literal":
        return args

    if not isinstance(args, list):
        args = [args]
    values = [_present(evaluate_expression(arg, doc)) for arg in args]

    if name == "$concat":
        if any(value is None for value in values):
            return None
        return "".join(str(value) for value in values)

    if name in _COMPARISON_EXPRESSIONS:
        left, right = values[0], values[1]
        if name in ("$eq", "$ne"):
            return _COMPARISON_EXPRESSIONS[name](left, right)
        return _COMPARISON_EXPRESSIONS[name](_compare_values(left, right), 0)

    if name == "$ifNull":
        for value in values:
            if value is not None:
                return value
        return None

    if name == "$size":
        return len(values[0]) if isinstance(values[0], list) else None

    if name in ("$add", "$multiply", "$subtract"):
        if any(value is None for value in values):
            return None
        if name == "$add":
            return sum(values)
        if name == "$subtract":
            return values[0] - values[1]
        return functools.reduce(operator.mul, values, 1)

    if name in ("$toUpper", "$toLower"):
        value = values[0]
        if value is None:
            return ""
        return str(value).upper() if name == "$toUpper" else str(value).lower()

    if name == "$arrayElemAt":
        array, index = values[0], values[1]
        if not isinstance(array, list) or not -len(array) <= index < len(array):
            return _MISSING
        return array[index]

    logger.warning(f"InMemoryQueryStore: expression operator '{name}' not implemented, returning None")
    return None


def _is_flag(value: Any) -> bool:
    return isinstance(value, (bool, int, float))


def project_document(doc: dict[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    """Apply an inclusion, exclusion or computed projection to a document."""
    id_flag = fields.get("_id", 1)
    others = {key: value for key, value in fields.items() if key != "_id"}
    inclusion = any(not _is_flag(value) or value for value in others.values())

    if not inclusion:
        projected = copy.deepcopy(doc)
        for key in others:
            _pop_path(projected, key)
        if _is_flag(id_flag) and not id_flag:
            projected.pop("_id", None)
        return projected

    projected: dict[str, Any] = {}
    if "_id" in doc and _is_flag(id_flag) and id_flag:
        projected["_id"] = copy.deepcopy(doc["_id"])
    elif not _is_flag(id_flag):
        projected["_id"] = _present(evaluate_expression(id_flag, doc))

    for key, value in others.items():
        if _is_flag(value):
            found = _get_path(doc, key)
            if found is not _MISSING:
                _set_path(projected, key, copy.deepcopy(found))
        else:
            computed = evaluate_expression(value, doc)
            if computed is not _MISSING:
                _set_path(projected, key, copy.deepcopy(computed))
    return projected


class InMemoryQueryStore(QueryStore):
    """In-memory query store implementation for testing."""

    def __init__(self):
        """Initialize in-memory query store."""
        self.collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.connected = False

    def connect(self) -> None:
        """Pretend to connect.

        Note: Always succeeds for in-memory store
        """
        self.connected = True
        logger.debug("InMemoryQueryStore: connected")

    def disconnect(self) -> None:
        """Pretend to disconnect."""
        self.connected = False
        logger.debug("InMemoryQueryStore: disconnected")

    def insert_document(self, collection: str, doc: dict[str, Any]) -> str:
        """Insert a document into the specified collection.

        Documents without an ``_id`` get a new ObjectId.

        Returns:
            Document ID as string
        """
        doc_copy = copy.deepcopy(doc)
        doc_copy.setdefault("_id", ObjectId())
        doc_id = str(doc_copy["_id"])

        self.collections[collection][doc_id] = doc_copy
        logger.debug(f"InMemoryQueryStore: inserted document {doc_id} into {collection}")
        return doc_id

    def clear_collection(self, collection: str) -> None:
        """Clear all documents in a collection (useful for testing)."""
        self.collections[collection].clear()
        logger.debug(f"InMemoryQueryStore: cleared collection {collection}")

    def clear_all(self) -> None:
        """Clear all collections (useful for testing)."""
        self.collections.clear()
        logger.debug("InMemoryQueryStore: cleared all collections")

    def _documents(self, collection: str) -> list[dict[str, Any]]:
        # Missing collections read as empty without being created
        if collection not in self.collections:
            logger.debug(f"InMemoryQueryStore: collection '{collection}' not found")
            return []
        return [copy.deepcopy(doc) for doc in self.collections[collection].values()]

    def find(
        self,
        collection: str,
        filter_expr: FilterExpression | None,
        sort: SortSpec | None = None,
        projection: Mapping[str, Any] | None = None,
        skip: int = 0,
        limit: int | None = None,
        session: Any = None,
    ) -> list[dict[str, Any]]:
        """Fetch documents matching a filter."""
        results = [doc for doc in self._documents(collection) if matches(doc, filter_expr)]
        results = sort_documents(results, sort)

        end = skip + limit if limit else None
        results = results[skip:end]

        if projection:
            results = [project_document(doc, projection) for doc in results]

        logger.debug(
            f"InMemoryQueryStore: find on {collection} with {filter_expr} "
            f"returned {len(results)} documents"
        )
        return results

    def count(
        self,
        collection: str,
        filter_expr: FilterExpression | None,
        session: Any = None,
    ) -> int:
        """Count documents matching a filter."""
        total = sum(1 for doc in self._documents(collection) if matches(doc, filter_expr))
        logger.debug(f"InMemoryQueryStore: count on {collection} returned {total}")
        return total

    def run_pipeline(
        self,
        collection: str,
        stages: Sequence[PipelineStage],
        session: Any = None,
    ) -> list[dict[str, Any]]:
        """Run a stage sequence against a collection.

        **Note**: This implementation is optimized for testing with small datasets.
        Joins are O(N*M) in the sizes of the two collections.
        """
        results = self._documents(collection)

        for stage in stages:
            if isinstance(stage, Match):
                results = [doc for doc in results if matches(doc, stage.expression)]
            elif isinstance(stage, Join):
                results = self._apply_join(results, stage)
            elif isinstance(stage, ComputeFields):
                results = [self._apply_computed_fields(doc, stage.fields) for doc in results]
            elif isinstance(stage, Project):
                results = [project_document(doc, stage.fields) for doc in results]
            elif isinstance(stage, Sort):
                results = sort_documents(results, stage.spec)
            elif isinstance(stage, Window):
                results = results[stage.skip:stage.skip + stage.limit]
            else:
                raise TypeError(f"Unsupported pipeline stage: {stage!r}")

        logger.debug(
            f"InMemoryQueryStore: pipeline on {collection} with {len(stages)} stages "
            f"returned {len(results)} documents"
        )
        return results

    def start_session(self) -> InMemorySession:
        return InMemorySession()

    def _apply_computed_fields(self, doc: dict[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
        computed = {name: evaluate_expression(expr, doc) for name, expr in fields.items()}
        for name, value in computed.items():
            if value is _MISSING:
                _pop_path(doc, name)
            else:
                _set_path(doc, name, copy.deepcopy(value))
        return doc

    def _apply_join(self, documents: list[dict[str, Any]], join: Join) -> list[dict[str, Any]]:
        """Left outer join with another collection.

        A missing source collection joins nothing, which mimics MongoDB.
        """
        foreign_docs = self._documents(join.source)

        for doc in documents:
            local_values = self._join_values(_get_path(doc, join.local_key))
            joined = [
                copy.deepcopy(foreign)
                for foreign in foreign_docs
                if any(
                    _values_equal(local, candidate)
                    for local in local_values
                    for candidate in self._join_values(_get_path(foreign, join.foreign_key))
                )
            ]
            if join.select:
                joined = [project_document(foreign, join.select) for foreign in joined]

            if not join.flatten_single:
                _set_path(doc, join.output_field, joined)
            elif joined:
                _set_path(doc, join.output_field, joined[0])
            else:
                _pop_path(doc, join.output_field)

        return documents

    @staticmethod
    def _join_values(value: Any) -> list[Any]:
        if value is _MISSING:
            return [None]
        if isinstance(value, list):
            return value
        return [value]

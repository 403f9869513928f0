# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Render typed filters and pipeline stages as MongoDB query documents."""

from collections.abc import Sequence
from typing import Any

from ..expressions import (
    And,
    Condition,
    FilterExpression,
    Operator,
    Or,
    SortSpec,
    TextSearch,
    conjoin,
    is_match_all,
)
from ..stages import ComputeFields, Join, Match, PipelineStage, Project, Sort, Window


def _leaf_operators(condition: Condition) -> dict[str, Any]:
    operator = condition.operator
    if operator in (Operator.IN, Operator.NIN):
        return {f"${operator.value}": list(condition.value)}
    if operator is Operator.REGEX:
        ops = {"$regex": condition.value}
        if condition.options:
            ops["$options"] = condition.options
        return ops
    if operator is Operator.EXISTS:
        return {"$exists": bool(condition.value)}
    return {f"${operator.value}": condition.value}


def _simplify(ops: dict[str, Any]) -> Any:
    # {"$eq": v} is written as a plain value unless v could be read as an operator document
    if list(ops) == ["$eq"] and not isinstance(ops["$eq"], dict):
        return ops["$eq"]
    return ops


def _compile_and(children: Sequence[FilterExpression]) -> dict[str, Any]:
    by_field: dict[str, dict[str, Any]] = {}
    result: dict[str, Any] = {}
    nested: list[dict[str, Any]] = []

    for child in children:
        if isinstance(child, Condition):
            bucket = by_field.setdefault(child.field, {})
            ops = _leaf_operators(child)
            if any(key in bucket for key in ops):
                return {"$and": [compile_filter(c) for c in children]}
            bucket.update(ops)
        elif isinstance(child, TextSearch):
            if "$text" in result:
                return {"$and": [compile_filter(c) for c in children]}
            result["$text"] = {"$search": child.term}
        else:
            nested.append(compile_filter(child))

    for field, ops in by_field.items():
        result[field] = _simplify(ops)

    if nested:
        if not result and len(nested) == 1:
            return nested[0]
        result["$and"] = nested
    return result


def compile_filter(expr: FilterExpression | None) -> dict[str, Any]:
    """Compile a filter expression into a MongoDB query document.

    Conditions on distinct fields are merged into one document; repeated
    operators on the same field fall back to an explicit ``$and``.
    """
    if is_match_all(expr):
        return {}

    if isinstance(expr, Condition):
        return {expr.field: _simplify(_leaf_operators(expr))}
    if isinstance(expr, TextSearch):
        return {"$text": {"$search": expr.term}}
    if isinstance(expr, Or):
        return {"$or": [compile_filter(child) for child in expr.children]}
    if isinstance(expr, And):
        return _compile_and([c for c in expr.children if not is_match_all(c)])

    raise TypeError(f"Unsupported filter expression: {expr!r}")


def compile_sort(spec: SortSpec | None) -> dict[str, int]:
    return {item.field: int(item.direction) for item in (spec or ())}


def compile_stage(stage: PipelineStage) -> list[dict[str, Any]]:
    """Compile one stage into one or more MongoDB aggregation stages."""
    if isinstance(stage, Match):
        return [{"$match": compile_filter(stage.expression)}]

    if isinstance(stage, Join):
        compiled = [{
            "$lookup": {
                "from": stage.source,
                "localField": stage.local_key,
                "foreignField": stage.foreign_key,
                "as": stage.output_field,
            }
        }]
        if stage.select:
            # localField/foreignField combined with a sub-pipeline needs MongoDB 5.0+
            compiled[0]["$lookup"]["pipeline"] = [{"$project": dict(stage.select)}]
        if stage.flatten_single:
            # $arrayElemAt on an empty array yields "missing", so the field is dropped but the record kept
            compiled.append({
                "$addFields": {
                    stage.output_field: {"$arrayElemAt": [f"${stage.output_field}", 0]}
                }
            })
        return compiled

    if isinstance(stage, ComputeFields):
        return [{"$addFields": dict(stage.fields)}]

    if isinstance(stage, Project):
        return [{"$project": dict(stage.fields)}]

    if isinstance(stage, Sort):
        sort_doc = compile_sort(stage.spec)
        return [{"$sort": sort_doc}] if sort_doc else []

    if isinstance(stage, Window):
        compiled = [{"$skip": stage.skip}] if stage.skip else []
        compiled.append({"$limit": stage.limit})
        return compiled

    raise TypeError(f"Unsupported pipeline stage: {stage!r}")


def compile_pipeline(stages: Sequence[PipelineStage]) -> list[dict[str, Any]]:
    """Compile a stage sequence, merging consecutive matches into one ``$match``."""
    merged: list[PipelineStage] = []
    for stage in stages:
        if isinstance(stage, Match) and merged and isinstance(merged[-1], Match):
            merged[-1] = Match(conjoin(merged[-1].expression, stage.expression))
        else:
            merged.append(stage)

    pipeline: list[dict[str, Any]] = []
    for stage in merged:
        pipeline.extend(compile_stage(stage))
    return pipeline

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Pipeline stages.

A pipeline is an ordered tuple of these stage objects. Stages are frozen and
their mapping payloads are copied into read-only mappings, so a stage never
changes after it has been appended to a builder.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Union

from .expressions import FilterExpression, SortSpec
from .filter_translator import parse_fields


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class Match:
    """Keep only records matching the expression."""
    expression: FilterExpression


@dataclass(frozen=True)
class Join:
    """Left outer join against another collection.

    Attributes:
        source: Collection to join from
        local_key: Field on the current records
        foreign_key: Field on the source records
        output_field: Field receiving the joined records (a list)
        flatten_single: Replace the list with its first element, leaving the
            field absent when nothing matched. Records are never dropped.
        select: Fields kept on the joined records, as a projection mapping,
            a sequence of names or a string such as ``"username email"`` or
            ``"-password"``. None keeps whole records.
    """
    source: str
    local_key: str
    foreign_key: str
    output_field: str
    flatten_single: bool = False
    select: Mapping[str, int] | None = None

    def __post_init__(self):
        select = self.select
        if select is None or isinstance(select, Mapping):
            fields = dict(select or {})
        elif isinstance(select, str):
            fields = parse_fields(select) or {}
        else:
            fields = {name: 1 for name in select}
        object.__setattr__(self, "select", _freeze(fields) if fields else None)

    @classmethod
    def from_spec(cls, spec: "Join | Mapping[str, Any]") -> "Join":
        """Build a Join from a lookup descriptor.

        Accepts ``{"from", "localField", "foreignField", "as"}`` plus an
        optional ``unwind`` or ``flattenSingle`` flag and a ``select``
        field selection for the joined records.

        Raises:
            ValueError: If a required key is missing
        """
        if isinstance(spec, Join):
            return spec

        missing = [key for key in ("from", "localField", "foreignField", "as") if not spec.get(key)]
        if missing:
            raise ValueError(f"Join spec is missing required keys: {', '.join(missing)}")

        return cls(
            source=spec["from"],
            local_key=spec["localField"],
            foreign_key=spec["foreignField"],
            output_field=spec["as"],
            flatten_single=bool(spec.get("flattenSingle", spec.get("unwind", False))),
            select=spec.get("select"),
        )


@dataclass(frozen=True)
class ComputeFields:
    """Add or overwrite fields computed from expressions.

    Expressions use the aggregation expression syntax of the storage driver
    (``"$field.path"`` references, ``{"$concat": [...]}`` and so on) and may
    reference fields produced by earlier stages, joined fields included.
    """
    fields: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "fields", _freeze(self.fields))


@dataclass(frozen=True)
class Project:
    """Restrict, rename or compute output fields (1/0 or an expression)."""
    fields: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "fields", _freeze(self.fields))


@dataclass(frozen=True)
class Sort:
    spec: SortSpec

    def __post_init__(self):
        object.__setattr__(self, "spec", tuple(self.spec))


@dataclass(frozen=True)
class Window:
    """Skip/limit pair selecting one page."""
    skip: int
    limit: int

    def __post_init__(self):
        if self.skip < 0:
            raise ValueError("skip must be >= 0")
        if self.limit < 1:
            raise ValueError("limit must be >= 1")

    @property
    def page(self) -> int:
        return self.skip // self.limit + 1


PipelineStage = Union[Match, Join, ComputeFields, Project, Sort, Window]

# Stages after which records no longer have the shape of the base collection
RESHAPING_STAGES = (Join, ComputeFields, Project)

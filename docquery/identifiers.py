# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Identifier handling for document records.

Which fields hold identifiers is decided by a naming heuristic: any field
whose lowercase name contains ``id``. The heuristic lives only in
``is_identifier_field`` so it can later be replaced by a per-field schema.
"""

from typing import Any, Protocol

from bson import ObjectId
from bson.errors import InvalidId


class IdCodec(Protocol):
    """Anything that can validate and convert identifier strings."""

    def is_valid_id(self, value: Any) -> bool:
        ...

    def to_id(self, value: Any) -> Any:
        ...


class ObjectIdCodec:
    """Identifier codec for MongoDB ObjectIds (24 hex characters)."""

    def is_valid_id(self, value: Any) -> bool:
        if isinstance(value, ObjectId):
            return True
        if not isinstance(value, str):
            return False
        return ObjectId.is_valid(value)

    def to_id(self, value: Any) -> ObjectId:
        """Convert a value to an ObjectId.

        Raises:
            InvalidId: If the value is not a valid identifier
        """
        if isinstance(value, ObjectId):
            return value
        return ObjectId(value)


DEFAULT_ID_CODEC = ObjectIdCodec()


def is_identifier_field(field: str) -> bool:
    """Return True if the field name marks it as holding identifiers."""
    return "id" in field.lower()


def coerce_identifier(field: str, value: Any, codec: IdCodec | None = None) -> Any:
    """Convert an identifier string to the native identifier type.

    Values on non-identifier fields, non-strings and strings that are not in
    the identifier format are returned unchanged.
    """
    if not isinstance(value, str) or not is_identifier_field(field):
        return value

    codec = codec or DEFAULT_ID_CODEC
    if codec.is_valid_id(value):
        return codec.to_id(value)
    return value


def to_object_id(value: Any) -> ObjectId | None:
    """Return ``value`` as an ObjectId, or None if it is empty or invalid."""
    if not value:
        return None
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def same_id(left: Any, right: Any) -> bool:
    """Compare identifiers by their string form. Empty values never match."""
    if left and right:
        return str(left) == str(right)
    return False


def mongo_one(value: Any) -> Any:
    """Reduce a joined array to its first element (None when empty).

    Non-list values are returned as-is.
    """
    if not isinstance(value, list):
        return value
    if value:
        return value[0]
    return None

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Tests for identifier helpers."""

import pytest
from bson import ObjectId

from docquery.identifiers import (
    DEFAULT_ID_CODEC,
    coerce_identifier,
    is_identifier_field,
    mongo_one,
    same_id,
    to_object_id,
)

VALID_ID = "507f1f77bcf86cd799439011"


class UpperCodec:
    """Codec that treats upper-case strings as identifiers."""

    def is_valid_id(self, value):
        return isinstance(value, str) and value.isupper()

    def to_id(self, value):
        return ("id", value)


@pytest.mark.parametrize("field", ["_id", "userId", "ID", "order_id", "valid"])
def test_identifier_fields(field):
    assert is_identifier_field(field) is True


@pytest.mark.parametrize("field", ["name", "status", "createdAt"])
def test_non_identifier_fields(field):
    assert is_identifier_field(field) is False


def test_coerce_identifier():
    assert coerce_identifier("userId", VALID_ID) == ObjectId(VALID_ID)
    assert coerce_identifier("userId", "nope") == "nope"
    assert coerce_identifier("name", VALID_ID) == VALID_ID
    assert coerce_identifier("userId", 12) == 12


def test_coerce_identifier_custom_codec():
    assert coerce_identifier("ownerId", "ABC", codec=UpperCodec()) == ("id", "ABC")
    assert coerce_identifier("ownerId", VALID_ID, codec=UpperCodec()) == VALID_ID


def test_default_codec():
    oid = ObjectId()

    assert DEFAULT_ID_CODEC.is_valid_id(oid) is True
    assert DEFAULT_ID_CODEC.is_valid_id(VALID_ID) is True
    assert DEFAULT_ID_CODEC.is_valid_id(None) is False
    assert DEFAULT_ID_CODEC.to_id(oid) is oid


def test_to_object_id():
    assert to_object_id(VALID_ID) == ObjectId(VALID_ID)
    assert to_object_id("") is None
    assert to_object_id("garbage") is None
    assert to_object_id(12.5) is None


def test_same_id():
    assert same_id(ObjectId(VALID_ID), VALID_ID) is True
    assert same_id(VALID_ID, "507f191e810c19729de860ea") is False
    assert same_id(None, None) is False
    assert same_id("", "") is False


def test_mongo_one():
    assert mongo_one([{"a": 1}, {"a": 2}]) == {"a": 1}
    assert mongo_one([]) is None
    assert mongo_one({"a": 1}) == {"a": 1}

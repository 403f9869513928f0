# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Tests for rendering filters and stages as MongoDB documents."""

import pytest

from docquery.expressions import (
    MATCH_ALL,
    And,
    Condition,
    Operator,
    Or,
    SortDirection,
    SortField,
    TextSearch,
)
from docquery.filter_translator import translate_query
from docquery.stages import ComputeFields, Join, Match, Project, Sort, Window
from docquery.storage.mongo_compiler import (
    compile_filter,
    compile_pipeline,
    compile_sort,
    compile_stage,
)


class TestCompileFilter:
    """Tests for compile_filter."""

    def test_match_all(self):
        assert compile_filter(MATCH_ALL) == {}
        assert compile_filter(None) == {}

    def test_equality(self):
        assert compile_filter(Condition("status", Operator.EQ, "active")) == {"status": "active"}

    def test_range_on_one_field_is_merged(self):
        expr = translate_query({"price": {"gte": 10, "lte": 20}})

        assert compile_filter(expr) == {"price": {"$gte": 10, "$lte": 20}}

    def test_in_and_regex(self):
        expr = translate_query({"status": "a,b", "name": {"regex": "jo"}})

        assert compile_filter(expr) == {
            "status": {"$in": ["a", "b"]},
            "name": {"$regex": "jo", "$options": "i"},
        }

    def test_text_search(self):
        expr = translate_query({"search": "phone"})

        assert compile_filter(expr) == {"$text": {"$search": "phone"}}

    def test_repeated_operator_falls_back_to_and(self):
        expr = And((
            Condition("price", Operator.GT, 1),
            Condition("price", Operator.GT, 5),
        ))

        assert compile_filter(expr) == {
            "$and": [{"price": {"$gt": 1}}, {"price": {"$gt": 5}}]
        }

    def test_or_is_nested_under_and(self):
        expr = And((
            Condition("status", Operator.EQ, "active"),
            Or((Condition("a", Operator.EQ, 1), Condition("b", Operator.EQ, 2))),
        ))

        assert compile_filter(expr) == {
            "status": "active",
            "$and": [{"$or": [{"a": 1}, {"b": 2}]}],
        }

    def test_single_or(self):
        expr = Or((Condition("a", Operator.EQ, 1), Condition("b", Operator.EXISTS, False)))

        assert compile_filter(expr) == {"$or": [{"a": 1}, {"b": {"$exists": False}}]}

    def test_equality_with_dict_value_keeps_operator(self):
        expr = Condition("meta", Operator.EQ, {"k": 1})

        assert compile_filter(expr) == {"meta": {"$eq": {"k": 1}}}

    def test_empty_operator_mapping_compiles_to_empty_document_match(self):
        expr = translate_query({"price": {}})

        assert compile_filter(expr) == {"price": {"$eq": {}}}

    def test_unsupported_expression(self):
        with pytest.raises(TypeError):
            compile_filter("status = 1")


class TestCompileStages:
    """Tests for compile_stage and compile_pipeline."""

    def test_sort(self):
        spec = (SortField("createdAt", SortDirection.DESCENDING), SortField("name"))

        assert compile_sort(spec) == {"createdAt": -1, "name": 1}

    def test_join_without_flatten(self):
        join = Join("users", "userId", "_id", "user")

        assert compile_stage(join) == [
            {"$lookup": {"from": "users", "localField": "userId", "foreignField": "_id", "as": "user"}}
        ]

    def test_join_with_flatten_keeps_documents(self):
        join = Join("users", "userId", "_id", "user", flatten_single=True)

        compiled = compile_stage(join)

        assert compiled[1] == {"$addFields": {"user": {"$arrayElemAt": ["$user", 0]}}}
        assert all("$unwind" not in stage for stage in compiled)

    def test_join_select_projects_joined_records(self):
        join = Join.from_spec({
            "from": "users", "localField": "userId", "foreignField": "_id",
            "as": "user", "select": "username email",
        })

        assert compile_stage(join) == [{
            "$lookup": {
                "from": "users",
                "localField": "userId",
                "foreignField": "_id",
                "as": "user",
                "pipeline": [{"$project": {"username": 1, "email": 1}}],
            }
        }]

    def test_join_select_exclusion(self):
        join = Join("users", "userId", "_id", "user", flatten_single=True, select="-password")

        compiled = compile_stage(join)

        assert compiled[0]["$lookup"]["pipeline"] == [{"$project": {"password": 0}}]
        assert compiled[1] == {"$addFields": {"user": {"$arrayElemAt": ["$user", 0]}}}

    def test_join_select_forms_are_equivalent(self):
        by_string = Join("users", "userId", "_id", "user", select="username, email")
        by_names = Join("users", "userId", "_id", "user", select=["username", "email"])
        by_mapping = Join("users", "userId", "_id", "user", select={"username": 1, "email": 1})

        assert by_string == by_names == by_mapping
        assert Join("users", "userId", "_id", "user", select="").select is None

    def test_window(self):
        assert compile_stage(Window(skip=10, limit=5)) == [{"$skip": 10}, {"$limit": 5}]
        assert compile_stage(Window(skip=0, limit=5)) == [{"$limit": 5}]

    def test_pipeline_merges_consecutive_matches(self):
        stages = [
            Match(Condition("status", Operator.EQ, "paid")),
            Match(Condition("total", Operator.GTE, 100)),
            ComputeFields({"customer": "$user.email"}),
            Project({"customer": 1}),
            Sort((SortField("total", SortDirection.DESCENDING),)),
        ]

        assert compile_pipeline(stages) == [
            {"$match": {"status": "paid", "total": {"$gte": 100}}},
            {"$addFields": {"customer": "$user.email"}},
            {"$project": {"customer": 1}},
            {"$sort": {"total": -1}},
        ]

    def test_text_search_in_match(self):
        assert compile_stage(Match(TextSearch("blue"))) == [{"$match": {"$text": {"$search": "blue"}}}]

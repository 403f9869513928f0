# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Tests for the query store factory and the MongoDB driver wiring."""

from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import OperationFailure

from docquery.expressions import Condition, Operator, SortDirection, SortField
from docquery.stages import Join, Match, Window
from docquery.storage import (
    InMemoryQueryStore,
    MongoQueryStore,
    QueryStoreConnectionError,
    QueryStoreError,
    QueryStoreNotConnectedError,
    create_query_store,
)

MONGO_ENV_VARS = [
    "DOCUMENT_DATABASE_HOST",
    "DOCUMENT_DATABASE_PORT",
    "DOCUMENT_DATABASE_NAME",
    "DOCUMENT_DATABASE_USER",
    "DOCUMENT_DATABASE_PASSWORD",
]


@pytest.fixture
def clean_env(monkeypatch):
    for var in MONGO_ENV_VARS + ["DOCUMENT_STORE_TYPE"]:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestCreateQueryStore:
    """Tests for create_query_store."""

    def test_default_is_inmemory(self, clean_env):
        assert isinstance(create_query_store(), InMemoryQueryStore)

    def test_store_type_from_env(self, clean_env):
        clean_env.setenv("DOCUMENT_STORE_TYPE", "MongoDB")

        assert isinstance(create_query_store(), MongoQueryStore)

    def test_mongodb_defaults(self, clean_env):
        store = create_query_store("mongodb")

        assert store.host == "localhost"
        assert store.port == 27017
        assert store.database_name == "app"
        assert store.username is None
        assert store.password is None

    def test_mongodb_env_values(self, clean_env):
        clean_env.setenv("DOCUMENT_DATABASE_HOST", "db.internal")
        clean_env.setenv("DOCUMENT_DATABASE_PORT", "27018")
        clean_env.setenv("DOCUMENT_DATABASE_NAME", "reports")
        clean_env.setenv("DOCUMENT_DATABASE_USER", "reader")
        clean_env.setenv("DOCUMENT_DATABASE_PASSWORD", "secret")

        store = create_query_store("mongodb")

        assert (store.host, store.port, store.database_name) == ("db.internal", 27018, "reports")
        assert (store.username, store.password) == ("reader", "secret")

    def test_explicit_arguments_win(self, clean_env):
        clean_env.setenv("DOCUMENT_DATABASE_HOST", "db.internal")

        store = create_query_store("mongodb", host="other", database="x", replicaSet="rs0")

        assert store.host == "other"
        assert store.database_name == "x"
        assert store.client_options == {"replicaSet": "rs0"}

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown store_type: redis"):
            create_query_store("redis")


class TestMongoQueryStore:
    """Tests for MongoQueryStore without a live server."""

    @pytest.mark.parametrize("kwargs, message", [
        ({"port": 27017, "database": "db"}, "host is required"),
        ({"host": "localhost", "database": "db"}, "port is required"),
        ({"host": "localhost", "port": 27017}, "database is required"),
    ])
    def test_required_parameters(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            MongoQueryStore(**kwargs)

    def test_not_connected(self):
        store = MongoQueryStore(host="localhost", port=27017, database="db")

        with pytest.raises(QueryStoreNotConnectedError):
            store.find("orders", None)
        with pytest.raises(QueryStoreNotConnectedError):
            store.count("orders", None)
        with pytest.raises(QueryStoreNotConnectedError):
            store.start_session()

    def test_connect_failure(self):
        from pymongo.errors import ConnectionFailure

        mock_client = MagicMock()
        mock_client.admin.command.side_effect = ConnectionFailure("down")

        with patch("pymongo.MongoClient", return_value=mock_client):
            store = MongoQueryStore(host="localhost", port=27017, database="db")
            with pytest.raises(QueryStoreConnectionError):
                store.connect()

    def test_connect_uses_admin_auth_source(self):
        with patch("pymongo.MongoClient") as mock_cls:
            store = MongoQueryStore(host="h", port=1, database="db", username="u", password="p")
            store.connect()

        assert mock_cls.call_args.kwargs["authSource"] == "admin"

    @pytest.fixture
    def connected(self):
        with patch("pymongo.MongoClient"):
            store = MongoQueryStore(host="localhost", port=27017, database="db")
            store.connect()
        collection = MagicMock()
        store.database = MagicMock()
        store.database.__getitem__.return_value = collection
        return store, collection

    def test_find_compiles_query(self, connected):
        store, collection = connected
        cursor = collection.find.return_value
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.__iter__.return_value = iter([{"_id": "a", "status": "active"}])

        docs = store.find(
            "orders",
            Condition("status", Operator.EQ, "active"),
            sort=(SortField("createdAt", SortDirection.DESCENDING),),
            projection={"status": 1},
            skip=10,
            limit=5,
        )

        assert docs == [{"_id": "a", "status": "active"}]
        collection.find.assert_called_once_with({"status": "active"}, {"status": 1}, session=None)
        cursor.sort.assert_called_once_with([("createdAt", -1)])
        cursor.skip.assert_called_once_with(10)
        cursor.limit.assert_called_once_with(5)

    def test_count_passes_session(self, connected):
        store, collection = connected
        collection.count_documents.return_value = 7
        session = object()

        assert store.count("orders", Condition("total", Operator.GT, 5), session=session) == 7
        collection.count_documents.assert_called_once_with({"total": {"$gt": 5}}, session=session)

    def test_run_pipeline_compiles_stages(self, connected):
        store, collection = connected
        collection.aggregate.return_value = iter([{"_id": "a"}])

        docs = store.run_pipeline("orders", [
            Match(Condition("status", Operator.EQ, "active")),
            Join("users", "userId", "_id", "user", flatten_single=True),
            Window(skip=0, limit=10),
        ])

        assert docs == [{"_id": "a"}]
        pipeline = collection.aggregate.call_args.args[0]
        assert pipeline[0] == {"$match": {"status": "active"}}
        assert pipeline[1]["$lookup"]["as"] == "user"
        assert pipeline[-1] == {"$limit": 10}

    def test_driver_errors_are_wrapped(self, connected):
        store, collection = connected
        collection.count_documents.side_effect = RuntimeError("socket closed")

        with pytest.raises(QueryStoreError) as excinfo:
            store.count("orders", None)

        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_server_error_code_is_kept_on_cause(self, connected):
        store, collection = connected
        collection.aggregate.side_effect = OperationFailure("$lookup with pipeline not supported", code=40321)

        with pytest.raises(QueryStoreError) as excinfo:
            store.run_pipeline("orders", [Match(Condition("status", Operator.EQ, "active"))])

        assert excinfo.value.__cause__.code == 40321

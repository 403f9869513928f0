# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""MongoDB query store implementation."""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..expressions import FilterExpression, SortSpec
from ..stages import PipelineStage
from .mongo_compiler import compile_filter, compile_pipeline, compile_sort
from .query_store import (
    QueryStore,
    QueryStoreConnectionError,
    QueryStoreError,
    QueryStoreNotConnectedError,
)

logger = logging.getLogger(__name__)


class MongoQueryStore(QueryStore):
    """MongoDB query store implementation."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        database: str | None = None,
        **kwargs
    ):
        """Initialize MongoDB query store.

        Args:
            host: MongoDB host (required)
            port: MongoDB port (required)
            username: MongoDB username (optional)
            password: MongoDB password (optional)
            database: Database name (required)
            **kwargs: Additional MongoDB client options

        Raises:
            ValueError: If required parameters (host, port, database) are not provided
        """
        if not host:
            raise ValueError(
                "MongoDB host is required. "
                "Provide the MongoDB server hostname or IP address."
            )
        if port is None:
            raise ValueError(
                "MongoDB port is required. "
                "Provide the MongoDB server port number."
            )
        if not database:
            raise ValueError(
                "MongoDB database is required. "
                "Provide the database name to use."
            )

        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.database_name = database
        self.client_options = kwargs
        self.client = None
        self.database = None

    def connect(self) -> None:
        """Connect to MongoDB.

        Raises:
            QueryStoreConnectionError: If connection fails
        """
        from pymongo import MongoClient
        from pymongo.errors import ConnectionFailure

        try:
            connection_params = {
                "host": self.host,
                "port": self.port,
            }

            if self.username and self.password:
                connection_params["username"] = self.username
                connection_params["password"] = self.password
                if "authSource" not in self.client_options:
                    connection_params["authSource"] = "admin"

            connection_params.update(self.client_options)

            self.client = MongoClient(**connection_params)
            self.client.admin.command("ping")
            self.database = self.client[self.database_name]

            logger.info("MongoQueryStore: connected to %s:%s/%s", self.host, self.port, self.database_name)

        except ConnectionFailure as e:
            logger.error("MongoQueryStore: connection failed - %s", e, exc_info=True)
            raise QueryStoreConnectionError(f"Failed to connect to MongoDB at {self.host}:{self.port}") from e
        except Exception as e:
            logger.error("MongoQueryStore: unexpected error during connect - %s", e, exc_info=True)
            raise QueryStoreConnectionError(f"Unexpected error connecting to MongoDB: {str(e)}") from e

    def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("MongoQueryStore: disconnected")

    def _collection(self, collection: str):
        if self.database is None:
            raise QueryStoreNotConnectedError("Not connected to MongoDB")
        return self.database[collection]

    def insert_document(self, collection: str, doc: dict[str, Any]) -> str:
        """Insert a document and return its ID as a string."""
        coll = self._collection(collection)
        try:
            result = coll.insert_one(doc)
        except Exception as e:
            logger.error(f"MongoQueryStore: insert failed - {e}", exc_info=True)
            raise QueryStoreError(f"Failed to insert document into {collection}") from e

        doc_id = str(result.inserted_id)
        logger.debug(f"MongoQueryStore: inserted document {doc_id} into {collection}")
        return doc_id

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
        """Fetch documents matching a filter.

        Raises:
            QueryStoreNotConnectedError: If not connected to MongoDB
            QueryStoreError: If the query fails
        """
        coll = self._collection(collection)
        query = compile_filter(filter_expr)

        try:
            cursor = coll.find(query, dict(projection) if projection else None, session=session)
            sort_doc = compile_sort(sort)
            if sort_doc:
                cursor = cursor.sort(list(sort_doc.items()))
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)

            results = []
            for doc in cursor:
                self._convert_objectids_to_strings(doc)
                results.append(doc)
        except Exception as e:
            logger.error(f"MongoQueryStore: find failed - {e}", exc_info=True)
            raise QueryStoreError(f"Failed to query documents from {collection}") from e

        logger.debug(
            f"MongoQueryStore: find on {collection} with {query} "
            f"returned {len(results)} documents"
        )
        return results

    def count(
        self,
        collection: str,
        filter_expr: FilterExpression | None,
        session: Any = None,
    ) -> int:
        """Count documents matching a filter.

        Raises:
            QueryStoreNotConnectedError: If not connected to MongoDB
            QueryStoreError: If the count fails
        """
        coll = self._collection(collection)
        query = compile_filter(filter_expr)

        try:
            total = coll.count_documents(query, session=session)
        except Exception as e:
            logger.error(f"MongoQueryStore: count failed - {e}", exc_info=True)
            raise QueryStoreError(f"Failed to count documents in {collection}") from e

        logger.debug(f"MongoQueryStore: count on {collection} with {query} returned {total}")
        return total

    def run_pipeline(
        self,
        collection: str,
        stages: Sequence[PipelineStage],
        session: Any = None,
    ) -> list[dict[str, Any]]:
        """Execute a stage sequence as an aggregation pipeline.

        **Note**: ObjectId values are recursively converted to strings for JSON
        serialization compatibility, including those inside joined documents.

        Raises:
            QueryStoreNotConnectedError: If not connected to MongoDB
            QueryStoreError: If aggregation fails
        """
        coll = self._collection(collection)
        pipeline = compile_pipeline(stages)

        try:
            results = []
            for doc in coll.aggregate(pipeline, session=session):
                self._convert_objectids_to_strings(doc)
                results.append(doc)
        except Exception as e:
            logger.error(f"MongoQueryStore: aggregation failed - {e}", exc_info=True)
            raise QueryStoreError(f"Failed to aggregate documents from {collection}") from e

        logger.debug(
            f"MongoQueryStore: aggregation on {collection} with {len(pipeline)} stages "
            f"returned {len(results)} documents"
        )
        return results

    def start_session(self) -> Any:
        """Start a client session for transactional reads.

        Raises:
            QueryStoreNotConnectedError: If not connected to MongoDB
        """
        if self.client is None:
            raise QueryStoreNotConnectedError("Not connected to MongoDB")
        return self.client.start_session()

    def _convert_objectids_to_strings(self, obj: Any) -> None:
        """Recursively convert ObjectId instances to strings in-place.

        Args:
            obj: Object to convert (dict, list, or primitive)
        """
        from bson import ObjectId

        if isinstance(obj, dict):
            for key, value in obj.items():
                if isinstance(value, ObjectId):
                    obj[key] = str(value)
                elif isinstance(value, dict | list):
                    self._convert_objectids_to_strings(value)
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                if isinstance(item, ObjectId):
                    obj[i] = str(item)
                elif isinstance(item, dict | list):
                    self._convert_objectids_to_strings(item)

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Storage collaborators that execute filters and pipelines."""

from .factory import create_query_store
from .inmemory_query_store import InMemoryQueryStore, InMemorySession
from .mongo_query_store import MongoQueryStore
from .query_store import (
    QueryStore,
    QueryStoreConnectionError,
    QueryStoreError,
    QueryStoreNotConnectedError,
)

__all__ = [
    # Query Stores
    "QueryStore",
    "MongoQueryStore",
    "InMemoryQueryStore",
    "InMemorySession",
    "create_query_store",
    # Exceptions
    "QueryStoreError",
    "QueryStoreNotConnectedError",
    "QueryStoreConnectionError",
]

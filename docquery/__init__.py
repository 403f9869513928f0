# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Query translation and pagination engine for document databases.

Turns HTTP query-string parameters into typed filters, composes them into
pipelines with joins and computed fields, and returns pages of records with
pagination metadata.

Example:
    >>> from docquery import QueryParser, create_query_store
    >>>
    >>> store = create_query_store("inmemory")
    >>> store.connect()
    >>> result = QueryParser({"status": "active,pending", "page": "2", "limit": "5"}).execute(store, "orders")
    >>> result.to_dict()["pagination"]
"""

__version__ = "0.1.0"

from .config import RESERVED_KEYS, QueryEngineConfig
from .errors import PipelineConsumedError, QueryEngineError, SessionConflictError
from .expressions import (
    MATCH_ALL,
    And,
    Condition,
    FilterExpression,
    Operator,
    Or,
    SortDirection,
    SortField,
    SortSpec,
    TextSearch,
    conjoin,
    default_sort,
    disjoin,
)
from .filter_translator import parse_fields, parse_sort, translate_query
from .identifiers import ObjectIdCodec, coerce_identifier, mongo_one, same_id, to_object_id
from .pagination import (
    PaginationRequest,
    PaginationResult,
    calculate_pagination,
    resolve_pagination,
)
from .pipeline_builder import PipelineBuilder
from .query_config import QueryConfig, QueryPlan, SearchBuilder
from .query_parser import QueryParser, create_query_parser
from .results import QueryResult
from .stages import ComputeFields, Join, Match, PipelineStage, Project, Sort, Window
from .storage import (
    InMemoryQueryStore,
    MongoQueryStore,
    QueryStore,
    QueryStoreConnectionError,
    QueryStoreError,
    QueryStoreNotConnectedError,
    create_query_store,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "QueryEngineConfig",
    "RESERVED_KEYS",
    # Filter expressions
    "FilterExpression",
    "Condition",
    "And",
    "Or",
    "TextSearch",
    "Operator",
    "MATCH_ALL",
    "conjoin",
    "disjoin",
    "SortDirection",
    "SortField",
    "SortSpec",
    "default_sort",
    # Translation
    "translate_query",
    "parse_sort",
    "parse_fields",
    "QueryConfig",
    "QueryPlan",
    "SearchBuilder",
    # Identifiers
    "ObjectIdCodec",
    "coerce_identifier",
    "mongo_one",
    "same_id",
    "to_object_id",
    # Pagination
    "PaginationRequest",
    "PaginationResult",
    "calculate_pagination",
    "resolve_pagination",
    # Pipelines
    "PipelineStage",
    "Match",
    "Join",
    "ComputeFields",
    "Project",
    "Sort",
    "Window",
    "PipelineBuilder",
    "QueryParser",
    "create_query_parser",
    "QueryResult",
    # Query Stores
    "QueryStore",
    "MongoQueryStore",
    "InMemoryQueryStore",
    "create_query_store",
    # Exceptions
    "QueryEngineError",
    "PipelineConsumedError",
    "SessionConflictError",
    "QueryStoreError",
    "QueryStoreNotConnectedError",
    "QueryStoreConnectionError",
]

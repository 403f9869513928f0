# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Query-string driven queries over a single collection.

Supports:
    - Filtering: ``?status=active&price[gte]=100``
    - Sorting: ``?sort=createdAt:-1,name:1``
    - Field selection: ``?fields=name,price``
    - Pagination: ``?page=2&limit=20``
    - Text search: ``?search=keyword``
    - Date ranges: ``?createdAt[gte]=2023-01-01``
    - Joined related documents via lookup descriptors

Example:
    >>> parser = QueryParser(request_query, joins=[
    ...     {"from": "users", "localField": "userId", "foreignField": "_id",
    ...      "as": "user", "unwind": True},
    ... ])
    >>> result = parser.filter().sort().select().paginate().execute(store, "notifications")
    >>> result.to_dict()
    {'data': [...], 'pagination': {'page': 1, 'limit': 10, 'total': 125, ...}}
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .config import DEFAULT_CONFIG, QueryEngineConfig
from .expressions import FilterExpression, SortSpec
from .filter_translator import parse_fields, parse_sort, translate_query
from .identifiers import IdCodec
from .pagination import PaginationRequest, calculate_pagination, resolve_pagination
from .pipeline_builder import PipelineBuilder
from .results import QueryResult, fetch_with_count
from .stages import Join
from .storage.query_store import QueryStore

logger = logging.getLogger(__name__)


class QueryParser:
    """Parses a raw query mapping and runs it against one collection.

    Steps can be chained explicitly (``filter().sort().select().paginate()``);
    any step not called before ``execute`` runs with its defaults.
    Unless an ``id_codec`` is given, identifier strings are converted with
    the store's own ``is_valid_id``/``to_id`` once the store is known.
    """

    def __init__(
        self,
        query: Mapping[str, Any] | None,
        exclude_fields: Iterable[str] | None = None,
        joins: Iterable[Join | Mapping[str, Any]] | None = None,
        *,
        config: QueryEngineConfig | None = None,
        id_codec: IdCodec | None = None,
    ):
        self.query = dict(query or {})
        self.config = config or DEFAULT_CONFIG
        self.exclude_fields = (
            tuple(exclude_fields) if exclude_fields is not None else self.config.reserved_keys
        )
        self.joins = [Join.from_spec(spec) for spec in joins or ()]
        self.id_codec = id_codec
        self._codec = id_codec

        self.filter_expression: FilterExpression | None = None
        self.sort_spec: SortSpec | None = None
        self.projection: dict[str, int] | None = None
        self.pagination: PaginationRequest | None = None
        self._selected = False

    def filter(self) -> "QueryParser":
        self.filter_expression = translate_query(
            self.query, id_codec=self._codec, reserved_keys=self.exclude_fields
        )
        return self

    def sort(self) -> "QueryParser":
        self.sort_spec = parse_sort(self.query.get("sort"), self.config.created_at_field)
        return self

    def select(self) -> "QueryParser":
        self.projection = parse_fields(self.query.get("fields"))
        self._selected = True
        return self

    def paginate(self) -> "QueryParser":
        self.pagination = resolve_pagination(
            self.query.get("page"),
            self.query.get("limit"),
            default_page=self.config.default_page,
            default_limit=self.config.default_limit,
            max_limit=self.config.max_limit,
        )
        return self

    def _use_store_ids(self, store: QueryStore) -> None:
        # Without an explicit codec, identifiers follow the store's format
        if self.id_codec is None and self._codec is not store:
            self._codec = store
            self.filter()

    def _ensure_parsed(self) -> None:
        if self.filter_expression is None:
            self.filter()
        if self.sort_spec is None:
            self.sort()
        if not self._selected:
            self.select()
        if self.pagination is None:
            self.paginate()

    def get_query_options(self) -> dict[str, Any]:
        """Return the parsed filter, sort, projection and pagination."""
        self._ensure_parsed()
        return {
            "filter": self.filter_expression,
            "sort": self.sort_spec,
            "projection": self.projection,
            "pagination": self.pagination,
        }

    def to_pipeline(
        self,
        store: QueryStore,
        collection: str,
        session: Any = None,
    ) -> PipelineBuilder:
        """Build a pipeline for the parsed query: match, sort, page window, joins.

        The field selection is not applied; callers add their own projection.
        """
        self._use_store_ids(store)
        self._ensure_parsed()
        return (
            PipelineBuilder(store, collection, session=session, config=self.config)
            .add_match(self.filter_expression)
            .sort_by(self.sort_spec)
            .paginate(self.pagination.page, self.pagination.limit)
            .add_joins(self.joins)
        )

    def _joined_projection(self) -> dict[str, int] | None:
        if not self.projection:
            return None
        projection = dict(self.projection)
        if any(projection.values()):
            for join in self.joins:
                projection.setdefault(join.output_field, 1)
        return projection

    def execute(
        self,
        store: QueryStore,
        collection: str,
        session: Any = None,
    ) -> QueryResult:
        """Run the query and return one page of records with pagination metadata.

        Without joins this is a ``find`` plus a ``count`` with the same filter.
        With joins the query runs as a pipeline.
        """
        self._use_store_ids(store)
        self._ensure_parsed()

        if self.joins:
            builder = self.to_pipeline(store, collection, session=session)
            return builder.project(self._joined_projection()).execute()

        page = self.pagination
        filter_expr = self.filter_expression
        logger.debug("Querying %s with filter %s, page %d, limit %d", collection, filter_expr, page.page, page.limit)

        data, total = fetch_with_count(
            lambda: store.find(
                collection,
                filter_expr,
                sort=self.sort_spec,
                projection=self.projection,
                skip=page.skip,
                limit=page.limit,
                session=session,
            ),
            lambda: store.count(collection, filter_expr, session=session),
            concurrent=self.config.concurrent_count and session is None,
        )
        return QueryResult(data=data, pagination=calculate_pagination(page.page, page.limit, total))


def create_query_parser(
    query: Mapping[str, Any] | None,
    exclude_fields: Iterable[str] | None = None,
    joins: Iterable[Join | Mapping[str, Any]] | None = None,
    **kwargs: Any,
) -> QueryParser:
    """Create a query parser instance."""
    return QueryParser(query, exclude_fields, joins, **kwargs)

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Aggregation pipeline builder.

Example:
    >>> builder = PipelineBuilder(store, "orders")
    >>> result = (
    ...     builder
    ...     .add_match(translate_query({"status": "paid"}))
    ...     .add_join({"from": "users", "localField": "userId",
    ...                "foreignField": "_id", "as": "user", "unwind": True})
    ...     .add_computed_fields({"customer": "$user.email"})
    ...     .project({"total": 1, "customer": 1})
    ...     .sort_by("createdAt:-1")
    ...     .paginate(2, 10)
    ...     .execute()
    ... )
    >>> result.to_dict()["pagination"]
    {'page': 2, 'limit': 10, 'total': 42, 'pages': 5, 'hasNext': True, 'hasPrev': True}

The total count is taken from the match stages that run before the first
join, computed-field or projection stage. It reflects the cardinality before
joins and does not change when later stages are appended.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .config import DEFAULT_CONFIG, QueryEngineConfig
from .errors import PipelineConsumedError, SessionConflictError
from .expressions import FilterExpression, SortSpec, conjoin, default_sort, is_match_all
from .filter_translator import parse_sort
from .pagination import calculate_pagination, resolve_pagination
from .results import QueryResult, fetch_with_count
from .stages import (
    RESHAPING_STAGES,
    ComputeFields,
    Join,
    Match,
    PipelineStage,
    Project,
    Sort,
    Window,
)
from .storage.query_store import QueryStore

logger = logging.getLogger(__name__)


class PipelineBuilder:
    """Composes pipeline stages against one collection and runs them once.

    Builders are not shared: create one per logical query. If a session is
    attached, both the pipeline and the count run under it.
    """

    def __init__(
        self,
        store: QueryStore,
        collection: str,
        *,
        session: Any = None,
        config: QueryEngineConfig | None = None,
    ):
        self._store = store
        self.collection = collection
        self._session = session
        self._config = config or DEFAULT_CONFIG
        self._stages: list[PipelineStage] = []
        self._consumed = False

    @property
    def stages(self) -> tuple[PipelineStage, ...]:
        """Stages appended so far, without the default sort."""
        return tuple(self._stages)

    @property
    def session(self) -> Any:
        return self._session

    def set_session(self, session: Any) -> "PipelineBuilder":
        """Attach a session (transaction) handle.

        Raises:
            PipelineConsumedError: If the builder has already run
            SessionConflictError: If a different session is already attached
        """
        if self._consumed:
            raise PipelineConsumedError("Pipeline has already been executed")
        if self._session is not None and session is not self._session:
            raise SessionConflictError("A pipeline builder cannot switch sessions")
        self._session = session
        return self

    def _append(self, stage: PipelineStage) -> "PipelineBuilder":
        if self._consumed:
            raise PipelineConsumedError("Pipeline has already been executed")
        self._stages.append(stage)
        return self

    def add_match(self, expr: FilterExpression | None) -> "PipelineBuilder":
        """Append a match stage. Consecutive matches are ANDed together."""
        if is_match_all(expr):
            return self
        return self._append(Match(expr))

    def add_join(self, spec: Join | Mapping[str, Any]) -> "PipelineBuilder":
        """Append a left outer join.

        Args:
            spec: A Join, or a lookup descriptor with ``from``, ``localField``,
                ``foreignField``, ``as`` and optional ``unwind``/``flattenSingle``
        """
        return self._append(Join.from_spec(spec))

    def add_joins(self, specs: Iterable[Join | Mapping[str, Any]] | None) -> "PipelineBuilder":
        for spec in specs or ():
            self.add_join(spec)
        return self

    def add_computed_fields(self, fields: Mapping[str, Any] | None) -> "PipelineBuilder":
        if not fields:
            return self
        return self._append(ComputeFields(fields))

    def project(self, fields: Mapping[str, Any] | None) -> "PipelineBuilder":
        if not fields:
            return self
        return self._append(Project(fields))

    def sort_by(self, spec: SortSpec | str | None) -> "PipelineBuilder":
        """Append a sort stage from a SortSpec or a sort string like ``"name:1"``."""
        if spec is None or isinstance(spec, str):
            spec = parse_sort(spec, self._config.created_at_field)
        if not spec:
            return self
        return self._append(Sort(spec))

    def paginate(self, page: Any = None, limit: Any = None) -> "PipelineBuilder":
        """Append a page window. Raw values are defaulted and clamped."""
        request = resolve_pagination(
            page,
            limit,
            default_page=self._config.default_page,
            default_limit=self._config.default_limit,
            max_limit=self._config.max_limit,
        )
        return self._append(Window(skip=request.skip, limit=request.limit))

    def count_filter(self) -> FilterExpression:
        """Filter used for the total count: matches before any reshaping stage."""
        expressions = []
        for stage in self._stages:
            if isinstance(stage, RESHAPING_STAGES):
                break
            if isinstance(stage, Match):
                expressions.append(stage.expression)
        return conjoin(*expressions)

    def _consume(self) -> tuple[PipelineStage, ...]:
        if self._consumed:
            raise PipelineConsumedError("Pipeline has already been executed")
        self._consumed = True

        stages = list(self._stages)
        if not any(isinstance(stage, Sort) for stage in stages):
            position = next(
                (i for i, stage in enumerate(stages) if isinstance(stage, Window)),
                len(stages),
            )
            stages.insert(position, Sort(default_sort(self._config.created_at_field)))
        return tuple(stages)

    def _run(self, stages: tuple[PipelineStage, ...]) -> list[dict[str, Any]]:
        return self._store.run_pipeline(self.collection, stages, session=self._session)

    def aggregate(self) -> list[dict[str, Any]]:
        """Run the pipeline and return the records without pagination metadata."""
        return self._run(self._consume())

    def execute(self) -> QueryResult:
        """Run the pipeline and the count query.

        Returns:
            QueryResult with the records and pagination metadata. Without a
            window the result is a full scan reported as a single page.
        """
        stages = self._consume()
        count_filter = self.count_filter()
        logger.debug(
            "Executing pipeline on %s with %d stages, count filter %s",
            self.collection, len(stages), count_filter,
        )

        # Session handles are not thread-safe
        data, total = fetch_with_count(
            lambda: self._run(stages),
            lambda: self._store.count(self.collection, count_filter, session=self._session),
            concurrent=self._config.concurrent_count and self._session is None,
        )

        windows = [stage for stage in stages if isinstance(stage, Window)]
        if windows:
            window = windows[-1]
            pagination = calculate_pagination(window.page, window.limit, total)
        else:
            pagination = calculate_pagination(1, total, total)

        logger.debug("Pipeline on %s returned %d of %d records", self.collection, len(data), total)
        return QueryResult(data=data, pagination=pagination)

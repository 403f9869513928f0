# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Abstract query store interface for document database backends."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from ..expressions import FilterExpression, SortSpec
from ..identifiers import DEFAULT_ID_CODEC
from ..stages import PipelineStage


class QueryStoreError(Exception):
    """Base exception for query store errors.

    Drivers raise it ``from`` the backend exception, so server details such
    as a pymongo ``OperationFailure.code`` stay available on ``__cause__``.
    """
    pass


class QueryStoreNotConnectedError(QueryStoreError):
    """Exception raised when attempting operations on a disconnected store."""
    pass


class QueryStoreConnectionError(QueryStoreError):
    """Exception raised when connection to the query store fails."""
    pass


class QueryStore(ABC):
    """Abstract base class for stores that execute filters and pipelines.

    Identifier checks default to MongoDB ObjectIds; drivers for other
    databases override ``is_valid_id`` and ``to_id``.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the store.

        Raises:
            QueryStoreConnectionError: If connection fails
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the store."""
        pass

    @abstractmethod
    def insert_document(self, collection: str, doc: dict[str, Any]) -> str:
        """Insert a document into the specified collection.

        Args:
            collection: Name of the collection
            doc: Document data as dictionary

        Returns:
            Document ID as string
        """
        pass

    @abstractmethod
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
        """Fetch records matching a filter.

        Args:
            collection: Name of the collection
            filter_expr: Filter expression; None matches everything
            sort: Sort specification
            projection: Field selection (1 = include, 0 = exclude)
            skip: Number of records to skip
            limit: Maximum number of records; None for no limit
            session: Optional session handle from ``start_session``

        Returns:
            List of records
        """
        pass

    @abstractmethod
    def count(
        self,
        collection: str,
        filter_expr: FilterExpression | None,
        session: Any = None,
    ) -> int:
        """Count records matching a filter."""
        pass

    @abstractmethod
    def run_pipeline(
        self,
        collection: str,
        stages: Sequence[PipelineStage],
        session: Any = None,
    ) -> list[dict[str, Any]]:
        """Run a stage sequence against a collection.

        Args:
            collection: Name of the collection
            stages: Ordered pipeline stages
            session: Optional session handle from ``start_session``

        Returns:
            List of resulting records
        """
        pass

    @abstractmethod
    def start_session(self) -> Any:
        """Start a session (transaction context) handle."""
        pass

    def is_valid_id(self, value: Any) -> bool:
        """Return True if the value is in the store's identifier format."""
        return DEFAULT_ID_CODEC.is_valid_id(value)

    def to_id(self, value: Any) -> Any:
        """Convert a value to the store's native identifier type."""
        return DEFAULT_ID_CODEC.to_id(value)

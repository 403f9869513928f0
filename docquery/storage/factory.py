# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Factory for creating query store instances."""

import logging
import os

from .query_store import QueryStore

logger = logging.getLogger(__name__)

_MONGO_KEYS = ("host", "port", "database", "username", "password")


def create_query_store(
    store_type: str | None = None,
    **kwargs
) -> QueryStore:
    """Factory function to create a query store.

    Args:
        store_type: Type of query store ("mongodb", "inmemory").
                   If None, reads from DOCUMENT_STORE_TYPE environment variable (defaults to "inmemory")
        **kwargs: Additional store-specific arguments. For MongoDB, values not provided
                 are read from the DOCUMENT_DATABASE_* environment variables.

    Returns:
        QueryStore instance

    Raises:
        ValueError: If store_type is not recognized
    """
    if store_type is None:
        store_type = os.getenv("DOCUMENT_STORE_TYPE", "inmemory")
    store_type = store_type.lower()

    if store_type == "mongodb":
        from .mongo_query_store import MongoQueryStore

        # Explicit parameters take precedence over environment variables
        mongo_kwargs = {
            "host": kwargs.get("host", os.getenv("DOCUMENT_DATABASE_HOST", "localhost")),
            "port": kwargs.get("port", int(os.getenv("DOCUMENT_DATABASE_PORT", "27017"))),
            "database": kwargs.get("database", os.getenv("DOCUMENT_DATABASE_NAME", "app")),
        }

        for key, env_var in (("username", "DOCUMENT_DATABASE_USER"), ("password", "DOCUMENT_DATABASE_PASSWORD")):
            if key in kwargs:
                mongo_kwargs[key] = kwargs[key]
            elif os.getenv(env_var) is not None:
                mongo_kwargs[key] = os.getenv(env_var)

        for key, value in kwargs.items():
            if key not in _MONGO_KEYS:
                mongo_kwargs[key] = value

        logger.debug("Creating MongoQueryStore for %s:%s", mongo_kwargs["host"], mongo_kwargs["port"])
        return MongoQueryStore(**mongo_kwargs)
    elif store_type == "inmemory":
        from .inmemory_query_store import InMemoryQueryStore
        return InMemoryQueryStore()
    else:
        raise ValueError(f"Unknown store_type: {store_type}")

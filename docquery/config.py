# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Configuration for the query engine."""

import os
from dataclasses import dataclass, field
from typing import Any

from .expressions import DEFAULT_CREATED_AT_FIELD
from .pagination import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT

# Query-string keys that control paging, sorting, selection and search.
# They are never translated into filter predicates.
RESERVED_KEYS: tuple[str, ...] = ("page", "limit", "sort", "fields", "search")

_TRUTHY = ("1", "true", "yes", "on")


def _pick(value: Any, env_var: str, fallback: Any) -> Any:
    """Pick an explicit value, then the env var, then the fallback."""
    if value is not None:
        return value
    env_value = os.getenv(env_var)
    if env_value is None or env_value == "":
        return fallback
    return env_value


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class QueryEngineConfig:
    """Settings shared by the translator, parser and pipeline builder.

    Attributes:
        default_page: Page used when the request gives none or an invalid one
        default_limit: Page size used when the request gives none or an invalid one
        max_limit: Upper bound for the page size
        created_at_field: Creation timestamp field used by the default sort
        reserved_keys: Control keys excluded from filter translation
        concurrent_count: Run data and count fetches concurrently when no
            session is attached
        timezone: Time zone name handed to callers with typed query plans
    """
    default_page: int = DEFAULT_PAGE
    default_limit: int = DEFAULT_LIMIT
    max_limit: int = MAX_LIMIT
    created_at_field: str = DEFAULT_CREATED_AT_FIELD
    reserved_keys: tuple[str, ...] = field(default=RESERVED_KEYS)
    concurrent_count: bool = True
    timezone: str = "UTC"

    def __post_init__(self):
        if self.default_page < 1:
            raise ValueError("default_page must be >= 1")
        if self.default_limit < 1:
            raise ValueError("default_limit must be >= 1")
        if self.max_limit < 1:
            raise ValueError("max_limit must be >= 1")
        if not self.created_at_field:
            raise ValueError("created_at_field is required")
        object.__setattr__(self, "reserved_keys", tuple(self.reserved_keys))

    @classmethod
    def from_env(
        cls,
        default_page: int | None = None,
        default_limit: int | None = None,
        max_limit: int | None = None,
        created_at_field: str | None = None,
        concurrent_count: bool | None = None,
        timezone: str | None = None,
    ) -> "QueryEngineConfig":
        """Create a configuration from explicit values and environment variables.

        Explicit arguments take precedence over environment variables, which
        take precedence over the built-in defaults.

        Environment variables:
            QUERY_DEFAULT_PAGE, QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT,
            QUERY_CREATED_AT_FIELD, QUERY_CONCURRENT_COUNT, TIME_ZONE_NAME

        Raises:
            ValueError: If a numeric setting is not an integer or out of range
        """
        return cls(
            default_page=_as_int(
                _pick(default_page, "QUERY_DEFAULT_PAGE", DEFAULT_PAGE), "QUERY_DEFAULT_PAGE"
            ),
            default_limit=_as_int(
                _pick(default_limit, "QUERY_DEFAULT_LIMIT", DEFAULT_LIMIT), "QUERY_DEFAULT_LIMIT"
            ),
            max_limit=_as_int(_pick(max_limit, "QUERY_MAX_LIMIT", MAX_LIMIT), "QUERY_MAX_LIMIT"),
            created_at_field=_pick(created_at_field, "QUERY_CREATED_AT_FIELD", DEFAULT_CREATED_AT_FIELD),
            concurrent_count=_as_bool(_pick(concurrent_count, "QUERY_CONCURRENT_COUNT", True)),
            timezone=_pick(timezone, "TIME_ZONE_NAME", "UTC"),
        )


DEFAULT_CONFIG = QueryEngineConfig()

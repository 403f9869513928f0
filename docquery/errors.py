# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Exceptions raised by the query engine itself.

Storage failures are not wrapped: they reach the caller as raised by the
store.
"""


class QueryEngineError(Exception):
    """Base exception for query engine usage errors."""
    pass


class PipelineConsumedError(QueryEngineError):
    """Raised when a pipeline builder is modified or run after execution."""
    pass


class SessionConflictError(QueryEngineError):
    """Raised when a builder with a session is given a different session."""
    pass

"""
Database utilities for parameterized query execution and result tables.
"""

from .errors import ExecutionFailed, InvalidArgument, SqlDataTableError
from .models import DEFAULT_MAX_ATTEMPTS, QueryDescriptor, RetryPolicy
from .query_executor import (
    QueryExecutor,
    bind_parameters,
    prepare_statement,
    run_query,
)

__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "ExecutionFailed",
    "InvalidArgument",
    "QueryDescriptor",
    "QueryExecutor",
    "RetryPolicy",
    "SqlDataTableError",
    "bind_parameters",
    "prepare_statement",
    "run_query",
]

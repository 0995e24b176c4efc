"""
Run parameterized SQL queries and read the results as a table.
"""

import logging

from sqldatatable.database import (
    ExecutionFailed,
    InvalidArgument,
    QueryDescriptor,
    QueryExecutor,
    RetryPolicy,
    SqlDataTableError,
    run_query,
)

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ExecutionFailed",
    "InvalidArgument",
    "QueryDescriptor",
    "QueryExecutor",
    "RetryPolicy",
    "SqlDataTableError",
    "run_query",
]

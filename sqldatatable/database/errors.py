"""
Error types raised by the query executor.
"""

from typing import Optional


class SqlDataTableError(Exception):
    """Base class for all errors raised by sqldatatable."""

    pass


class InvalidArgument(SqlDataTableError, ValueError):
    """Connection string or query text missing when a query is executed."""

    pass


class ExecutionFailed(SqlDataTableError):
    """
    The database driver kept failing until the retry policy gave up.

    The last driver error is chained as ``__cause__`` and kept on ``cause``.
    """

    def __init__(
        self, message: str, attempts: int = 0, cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause

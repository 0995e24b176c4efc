"""
Query executor for parameterized SQL queries with tabular (DataFrame) results.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd
import structlog
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.sql.elements import TextClause
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .errors import ExecutionFailed
from .models import QueryDescriptor, RetryPolicy

logger = structlog.wrap_logger(logging.getLogger(__name__))

EngineFactory = Callable[[str], Engine]
Parameter = Tuple[str, Any]


def bind_parameters(parameters: Iterable[Parameter]) -> Dict[str, str]:
    """
    Turn (name, value) pairs into bind parameters for the driver.

    Names may be written as ``@name``, ``:name`` or ``name``; the prefix is
    stripped to form the bind key. Values are passed as text and the driver
    coerces them. Order of the pairs is preserved.

    Args:
        parameters: Ordered (name, value) pairs

    Returns:
        Insertion-ordered dict of bind key to text value
    """
    bound: Dict[str, str] = {}
    for name, value in parameters:
        key = _bind_key(name)
        if key in bound:
            # Re-inserting keeps the position of the last occurrence
            del bound[key]
        bound[key] = "" if value is None else str(value)
    return bound


def prepare_statement(query_text: str, parameters: Iterable[Parameter]) -> TextClause:
    """
    Build a SQLAlchemy text clause for the query.

    ``@name`` placeholders of declared parameters are rewritten to ``:name``,
    the style SQLAlchemy binds by name. Other ``@`` tokens are left alone.
    """
    sql = query_text
    for name, _ in parameters:
        key = _bind_key(name)
        if not key:
            continue
        sql = re.sub(rf"(?<![@\w])@{re.escape(key)}\b", f":{key}", sql)
    return text(sql)


def read_frame(connection, statement: TextClause, params: Dict[str, str]) -> pd.DataFrame:
    """
    Execute the statement on an open connection and read every row.

    Nullable dtypes keep integer columns with NULLs as integers.
    """
    return pd.read_sql(
        statement, connection, params=params, dtype_backend="numpy_nullable"
    )


def run_query(
    descriptor: QueryDescriptor,
    retry_policy: Optional[RetryPolicy] = None,
    engine_factory: Optional[EngineFactory] = None,
) -> pd.DataFrame:
    """
    Execute a query descriptor and return its result as a new DataFrame.

    A fresh connection is opened for every attempt. The engine is disposed
    before returning, whether the query succeeded or not.

    Args:
        descriptor: Connection string, query text and parameters
        retry_policy: Attempt bound (default: 4 attempts, no delay)
        engine_factory: Callable that builds an Engine from the connection
            string (default: ``sqlalchemy.create_engine``)

    Returns:
        DataFrame holding the full result set

    Raises:
        InvalidArgument: If the connection string or query text is empty
        ExecutionFailed: If the driver fails on every attempt
    """
    descriptor.validate()
    policy = retry_policy or RetryPolicy()
    factory = engine_factory or create_engine
    dsn = masked_dsn(descriptor.connection_string)

    statement = prepare_statement(descriptor.query_text, descriptor.parameters)
    params = bind_parameters(descriptor.parameters)

    try:
        engine = factory(descriptor.connection_string)
    except Exception as e:
        logger.error("engine_creation_failed", dsn=dsn, error=str(e))
        raise ExecutionFailed(
            f"Could not create a database engine: {e}", attempts=0, cause=e
        ) from e

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_fixed(policy.delay_seconds),
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )

    try:
        frame = retrying(_fill, engine, statement, params)
    except Exception as e:
        attempts = retrying.statistics.get("attempt_number", 1)
        logger.error(
            "query_failed",
            dsn=dsn,
            attempts=attempts,
            parameters=list(params),
            error=str(e),
        )
        raise ExecutionFailed(
            f"Query failed after {attempts} attempt(s): {e}",
            attempts=attempts,
            cause=e,
        ) from e
    finally:
        engine.dispose()

    logger.debug("query_executed", dsn=dsn, rows=len(frame), columns=len(frame.columns))
    return frame


def masked_dsn(connection_string: str) -> str:
    """Render a connection string for logs with the password hidden."""
    try:
        return make_url(connection_string).render_as_string(hide_password=True)
    except (ArgumentError, ValueError):
        return "<unparsed connection string>"


def _fill(engine: Engine, statement: TextClause, params: Dict[str, str]) -> pd.DataFrame:
    with engine.connect() as connection:
        return read_frame(connection, statement, params)


def _bind_key(name: str) -> str:
    return str(name).lstrip("@:")


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "query_attempt_failed",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


class QueryExecutor:
    """
    Runs a parameterized SQL query and keeps the result as a DataFrame.

    Holds the connection string, query text and parameter list until
    ``execute()`` is called. The table is never None: it starts empty and is
    replaced by each successful execution.
    """

    def __init__(
        self,
        connection_string: str = "",
        query_text: str = "",
        parameters: Optional[Iterable[Parameter]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        """
        Initialize the query executor.

        Args:
            connection_string: SQLAlchemy database URL
            query_text: SQL query, parameters written as ``@name`` or ``:name``
            parameters: Ordered (name, value) pairs
            retry_policy: Attempt bound for execute (default: 4 attempts)
            engine_factory: Builds an Engine from the connection string
        """
        self.connection_string = connection_string
        self.query_text = query_text
        self.parameters = parameters
        self.retry_policy = retry_policy or RetryPolicy()
        self.engine_factory = engine_factory
        self._table = pd.DataFrame()
        self._executed = False
        self._closed = False

    @classmethod
    def from_settings(cls, settings=None, query_text: str = "") -> "QueryExecutor":
        """Create an executor from environment configuration."""
        from sqldatatable.config import load_settings

        settings = settings or load_settings()
        return cls(
            connection_string=settings.database_url,
            query_text=query_text,
            retry_policy=settings.retry_policy(),
        )

    @property
    def parameters(self) -> List[Parameter]:
        return self._parameters

    @parameters.setter
    def parameters(self, value: Optional[Iterable[Parameter]]) -> None:
        self._parameters = [tuple(pair) for pair in value] if value else []

    @property
    def table(self) -> pd.DataFrame:
        """Result of the last execution, or the table given to assign_table."""
        return self._table

    @property
    def executed(self) -> bool:
        """True once execute or assign_table has completed; not a data check."""
        return self._executed

    def set_connection(self, connection_string: str) -> None:
        self.connection_string = connection_string

    def set_query(self, query_text: str) -> None:
        self.query_text = query_text

    def set_parameters(self, parameters: Optional[Iterable[Parameter]]) -> None:
        self.parameters = parameters

    def add_parameter(self, name: Union[str, Parameter], value: Any = None) -> None:
        """
        Append a parameter, as ``add_parameter("@id", 5)`` or
        ``add_parameter(("@id", 5))``.
        """
        if isinstance(name, tuple):
            name, value = name
        self._parameters.append((name, value))

    def clear_parameters(self) -> None:
        self._parameters.clear()

    def has_data(self) -> bool:
        return self.row_count() > 0

    def row_count(self) -> int:
        return len(self._table.index)

    def column_count(self) -> int:
        return len(self._table.columns)

    def get_cell(self, row_index: int, column_index: int) -> Optional[str]:
        """
        Get the text of one cell by 0-based position.

        Returns None when either index is out of range instead of raising.
        SQL NULL comes back as an empty string. The original column type is
        not preserved.
        """
        if row_index < 0 or column_index < 0:
            return None
        if row_index >= self.row_count() or column_index >= self.column_count():
            return None

        value = self._table.iat[row_index, column_index]
        return self._cell_text(value)

    def execute(
        self,
        connection_string: Optional[str] = None,
        query_text: Optional[str] = None,
        parameters: Optional[Iterable[Parameter]] = None,
    ) -> pd.DataFrame:
        """
        Run the query and replace the table with its result.

        When called with arguments they are stored on the executor first,
        then the query runs exactly as with no arguments.

        Returns:
            The new result table

        Raises:
            InvalidArgument: If the connection string or query text is empty
            ExecutionFailed: If the driver fails on every attempt
        """
        if connection_string is not None or query_text is not None:
            self.connection_string = connection_string or ""
            self.query_text = query_text or ""
            self.parameters = parameters
        elif parameters is not None:
            self.parameters = parameters

        descriptor = QueryDescriptor.build(
            self.connection_string, self.query_text, self._parameters
        )
        self._table = run_query(descriptor, self.retry_policy, self.engine_factory)
        self._executed = True
        return self._table

    def assign_table(self, table) -> None:
        """Replace the result table with one built elsewhere; no query runs."""
        if not isinstance(table, pd.DataFrame):
            table = pd.DataFrame(table)
        self._table = table
        self._executed = True

    def reset(self) -> None:
        """Clear descriptor, table rows and the executed flag."""
        self.connection_string = ""
        self.query_text = ""
        self._parameters.clear()
        self._table = self._table.iloc[0:0]
        self._executed = False

    def close(self) -> None:
        """Release the table and zero the descriptor. Safe to call twice."""
        if self._closed:
            return
        self.connection_string = ""
        self.query_text = ""
        self._parameters = []
        self._table = pd.DataFrame()
        self._executed = False
        self._closed = True

    def __enter__(self) -> "QueryExecutor":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        self.close()
        return False

    def _cell_text(self, value) -> str:
        """Convert a pandas/numpy cell value to text."""
        if value is None:
            return ""
        if pd.api.types.is_scalar(value) and pd.isna(value):
            return ""
        if hasattr(value, "item"):  # numpy scalar
            value = value.item()
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return str(value)

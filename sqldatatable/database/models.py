"""
Value objects describing a query and how it is retried.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple, Type

from .errors import InvalidArgument

DEFAULT_MAX_ATTEMPTS = 4


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times the execute-and-fill step is attempted.

    The default of four attempts is the first try plus three retries. No delay
    between attempts unless ``delay_seconds`` is set.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay_seconds: float = 0.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise InvalidArgument(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )
        if self.delay_seconds < 0:
            raise InvalidArgument(
                f"delay_seconds must not be negative, got {self.delay_seconds}"
            )


@dataclass(frozen=True)
class QueryDescriptor:
    """Connection string, SQL text and ordered (name, value) parameter pairs."""

    connection_string: str = ""
    query_text: str = ""
    parameters: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def build(
        cls,
        connection_string: str,
        query_text: str,
        parameters: Iterable[Tuple[str, object]] = (),
    ) -> "QueryDescriptor":
        """Snapshot mutable inputs into a descriptor, coercing values to text."""
        pairs = tuple((str(name), _as_text(value)) for name, value in parameters)
        return cls(connection_string or "", query_text or "", pairs)

    def validate(self) -> None:
        """
        Check the descriptor can be executed.

        Raises:
            InvalidArgument: If the connection string or query text is empty
        """
        if not self.connection_string:
            raise InvalidArgument("A connection string is required to run a query")
        if not self.query_text:
            raise InvalidArgument("Query text is required to run a query")


def _as_text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)

# src/dynamic_query/base/exceptions.py

from typing import Any, Optional


class DynamicQueryException(Exception):
    """Base exception for every error raised by the query builder package."""

    def __init__(self, message: str = "Dynamic query operation failed."):
        super().__init__(message)


class QueryBuildException(DynamicQueryException, ValueError):
    """
    Raised when a query cannot be built from the supplied input.

    Carries the rejected value and the name of the rule it violated so callers
    can report precise errors without parsing the message.
    """

    def __init__(
        self,
        message: str = "Query could not be built.",
        value: Any = None,
        rule: Optional[str] = None,
    ):
        super().__init__(message)
        self.value = value
        self.rule = rule


class QueryExecutionException(DynamicQueryException):
    """Raised when the downstream executor fails to run a generated query."""

    def __init__(self, message: str = "Query execution failed."):
        super().__init__(message)

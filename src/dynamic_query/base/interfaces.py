# src/dynamic_query/base/interfaces.py

from abc import ABC, abstractmethod
from typing import Any, Generic, List, Mapping, TypeVar

from .compiled import QueryOptions

# Type variable for any entity
T = TypeVar("T")


class QueryExecutor(Generic[T], ABC):
    """
    Runs generated SQL against a database.

    The builder never talks to a database itself; it renders SQL text plus a
    parameter map and hands both, with its ``QueryOptions``, to an executor.
    Implementations should raise on failure; the builder wraps whatever they
    raise in ``QueryExecutionException``.
    """

    @abstractmethod
    def fetch_all(
        self, sql: str, parameters: Mapping[str, Any], options: QueryOptions
    ) -> List[T]:
        """Returns every row matched by the query."""
        pass

    @abstractmethod
    def fetch_count(
        self, sql: str, parameters: Mapping[str, Any], options: QueryOptions
    ) -> int:
        """Returns the number of rows matched by the query."""
        pass

    @abstractmethod
    def fetch_exists(
        self, sql: str, parameters: Mapping[str, Any], options: QueryOptions
    ) -> bool:
        """Returns True if at least one row matches."""
        pass


class NullExecutor(QueryExecutor[Any]):
    """Executor used when none is configured: matches nothing."""

    def fetch_all(self, sql, parameters, options) -> List[Any]:
        return []

    def fetch_count(self, sql, parameters, options) -> int:
        return 0

    def fetch_exists(self, sql, parameters, options) -> bool:
        return False

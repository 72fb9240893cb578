# src/dynamic_query/base/compiled.py

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, List, Mapping, Optional, Tuple, TypeVar

T = TypeVar("T")


def _frozen_mapping(data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


# --- Query Options ---
@dataclass(frozen=True)
class QueryOptions:
    """Execution settings a builder hands to its executor alongside the SQL."""

    offset: int = 0
    limit: Optional[int] = None
    fetch_size: int = 0
    timeout_seconds: int = 0
    cache_enabled: bool = False
    cache_region: Optional[str] = None
    cache_ttl_seconds: Optional[int] = None
    hints: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "hints", _frozen_mapping(self.hints))

    def __repr__(self) -> str:
        parts = [f"offset={self.offset!r}", f"limit={self.limit!r}"]
        if self.fetch_size:
            parts.append(f"fetch_size={self.fetch_size!r}")
        if self.timeout_seconds:
            parts.append(f"timeout_seconds={self.timeout_seconds!r}")
        if self.cache_enabled:
            parts.append(f"cache_enabled={self.cache_enabled!r}")
            if self.cache_region is not None:
                parts.append(f"cache_region={self.cache_region!r}")
            if self.cache_ttl_seconds is not None:
                parts.append(f"cache_ttl_seconds={self.cache_ttl_seconds!r}")
        if self.hints:
            parts.append(f"hints={dict(self.hints)!r}")
        return f"QueryOptions({', '.join(parts)})"


# --- Query Stats ---
@dataclass(frozen=True)
class QueryStats:
    """
    What a builder sent (or would send) to its executor.

    Timing and row count are filled in by ``QueryBuilder.build()`` when query
    statistics are enabled; a plain ``get_execution_stats()`` snapshot leaves
    them at zero.
    """

    generated_sql: str = ""
    hints: Mapping[str, Any] = field(default_factory=dict)
    execution_time_ms: int = 0
    result_count: int = 0
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "generated_sql", self.generated_sql or "")
        object.__setattr__(self, "hints", _frozen_mapping(self.hints))


# --- Compiled Query ---
@dataclass(frozen=True)
class CompiledQuery(Generic[T]):
    """Results and SQL captured when a builder was built."""

    results: Tuple[T, ...] = ()
    sql: str = ""
    stats: Optional[QueryStats] = None

    def __post_init__(self):
        object.__setattr__(self, "results", tuple(self.results or ()))
        object.__setattr__(self, "sql", self.sql or "")

    def execute(self) -> List[T]:
        return list(self.results)

    def execute_one(self) -> Optional[T]:
        return self.results[0] if self.results else None

    def execute_count(self) -> int:
        return len(self.results)

    def get_sql(self) -> str:
        return self.sql

    def get_stats(self) -> Optional[QueryStats]:
        """Execution statistics, or None when statistics were disabled."""
        return self.stats

# src/dynamic_query/base/query.py
import asyncio
import copy
import logging
import time
from inspect import isclass
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from .compiled import CompiledQuery, QueryOptions, QueryStats
from .config import CoreConfig
from .exceptions import QueryBuildException, QueryExecutionException
from .interfaces import NullExecutor, QueryExecutor
from .naming import ParameterCounter
from .predicates import (
    BetweenPredicate,
    CustomFunctionPredicate,
    HavingPredicate,
    InPredicate,
    LikePredicate,
    LogicalPredicate,
    NullPredicate,
    Predicate,
    SimplePredicate,
    SubqueryInPredicate,
    SubqueryPredicate,
    count_predicates,
    predicate_depth,
)
from .validators import (
    require_non_blank,
    validate_aggregated_field_name,
    validate_field_name,
    validate_function_name,
    validate_operator,
    validate_parameter_name,
)

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Generic Type Variables ---
M = TypeVar("M")
R = TypeVar("R")

# Offsets are handed to drivers as 32-bit signed integers.
MAX_OFFSET = 2**31 - 1

_MISSING = object()
_EMPTY_MAP: Mapping[str, Any] = MappingProxyType({})


def _require_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise QueryBuildException(
            f"{what} must be an integer, got {type(value).__name__}",
            value=value,
            rule="type",
        )
    return value


def _require_positive(value: Any, what: str) -> int:
    _require_int(value, what)
    if value <= 0:
        raise QueryBuildException(f"{what} must be positive", value=value, rule="positive")
    return value


def _clashing_names(new: Mapping[str, Any], existing: Mapping[str, Any]) -> List[str]:
    # Re-binding the very same value (a reused subquery) is not a clash.
    return sorted(
        name for name, value in new.items() if name in existing and existing[name] is not value
    )


# --- Query Builder ---
class QueryBuilder(Generic[M]):
    """
    Immutable fluent builder for parameterized SQL queries.

    Every mutating call validates its input and returns a new builder; the
    receiver is never changed, so a builder can be shared and extended from
    several places (or threads) at once. All builders derived from the same
    root share one ``ParameterCounter``, which keeps every generated
    placeholder name unique across the whole lineage.

    Example:
        >>> qb = QueryBuilder.for_entity(User).where("active", True)
        >>> qb.to_sql()
        'SELECT * FROM User WHERE active = :p1'
        >>> qb.get_parameters()
        {'p1': True}
    """

    _entity_name: str
    _config: CoreConfig
    _executor: QueryExecutor
    _counter: ParameterCounter
    _predicates: Tuple[Predicate, ...]
    _pending_operator: Optional[str]
    _group_depth: int
    _offset: int
    _limit: Optional[int]
    _select_fields: Tuple[str, ...]
    _join_clauses: Tuple[str, ...]
    _order_by_clauses: Tuple[str, ...]
    _group_by_fields: Tuple[str, ...]
    _having_predicates: Tuple[Predicate, ...]
    _native_sql: Optional[str]
    _named_parameters: Mapping[str, Any]
    _fetch_size: int
    _timeout_seconds: int
    _hints: Mapping[str, Any]
    _cache_enabled: bool
    _cache_region: Optional[str]
    _cache_ttl_seconds: Optional[int]

    def __init__(
        self,
        entity: Union[Type[M], str],
        config: Optional[CoreConfig] = None,
        executor: Optional[QueryExecutor] = None,
        counter: Optional[ParameterCounter] = None,
    ):
        entity_name = self._resolve_entity_name(entity)
        state = {
            "_entity_name": entity_name,
            "_config": config if config is not None else CoreConfig(),
            "_executor": executor if executor is not None else NullExecutor(),
            "_counter": counter if counter is not None else ParameterCounter(),
            "_predicates": (),
            "_pending_operator": None,
            "_group_depth": 0,
            "_offset": 0,
            "_limit": None,
            "_select_fields": (),
            "_join_clauses": (),
            "_order_by_clauses": (),
            "_group_by_fields": (),
            "_having_predicates": (),
            "_native_sql": None,
            "_named_parameters": _EMPTY_MAP,
            "_fetch_size": 0,
            "_timeout_seconds": 0,
            "_hints": _EMPTY_MAP,
            "_cache_enabled": False,
            "_cache_region": None,
            "_cache_ttl_seconds": None,
        }
        for name, value in state.items():
            object.__setattr__(self, name, value)
        log.debug(f"Initialized QueryBuilder for entity '{entity_name}'")

    @classmethod
    def for_entity(
        cls,
        entity: Union[Type[M], str],
        config: Optional[CoreConfig] = None,
        executor: Optional[QueryExecutor] = None,
    ) -> "QueryBuilder[M]":
        """Creates the root of a new builder lineage for ``entity``."""
        return cls(entity, config=config, executor=executor)

    def subquery(self, entity: Union[Type[Any], str]) -> "QueryBuilder[Any]":
        """
        Starts a builder for ``entity`` that shares this lineage's counter.

        Use it for nested queries passed to ``where_exists`` and friends so the
        nested placeholders never collide with the outer ones.
        """
        return QueryBuilder(
            entity, config=self._config, executor=self._executor, counter=self._counter
        )

    @staticmethod
    def _resolve_entity_name(entity: Any) -> str:
        if entity is None:
            raise QueryBuildException("entity must not be None", value=None, rule="not_null")
        if isclass(entity):
            return entity.__name__
        if isinstance(entity, str):
            return validate_field_name(entity)
        raise QueryBuildException(
            f"entity must be a class or a table name, got {type(entity).__name__}",
            value=entity,
            rule="type",
        )

    def __setattr__(self, name: str, value: Any):
        raise AttributeError(f"Cannot set attribute '{name}' on immutable QueryBuilder.")

    def __delattr__(self, name: str):
        raise AttributeError(f"Cannot delete attribute '{name}' on immutable QueryBuilder.")

    def _derive(self, **changes: Any) -> "QueryBuilder[M]":
        """Copies this builder with the given fields replaced; the counter is shared."""
        clone = copy.copy(self)
        for name, value in changes.items():
            object.__setattr__(clone, f"_{name}", value)
        return clone

    def __repr__(self) -> str:
        return f"QueryBuilder(entity={self._entity_name!r}, sql={self.to_sql()!r})"

    # --- Read Accessors ---

    @property
    def entity_name(self) -> str:
        return self._entity_name

    @property
    def config(self) -> CoreConfig:
        return self._config

    @property
    def parameter_counter(self) -> ParameterCounter:
        return self._counter

    @property
    def predicates(self) -> Tuple[Predicate, ...]:
        return self._predicates

    @property
    def having_predicates(self) -> Tuple[Predicate, ...]:
        return self._having_predicates

    @property
    def pending_operator(self) -> Optional[str]:
        return self._pending_operator

    @property
    def group_depth(self) -> int:
        return self._group_depth

    @property
    def select_fields(self) -> Tuple[str, ...]:
        return self._select_fields

    @property
    def join_clauses(self) -> Tuple[str, ...]:
        return self._join_clauses

    @property
    def order_by_clauses(self) -> Tuple[str, ...]:
        return self._order_by_clauses

    @property
    def group_by_fields(self) -> Tuple[str, ...]:
        return self._group_by_fields

    @property
    def current_limit(self) -> Optional[int]:
        return self._limit

    @property
    def current_offset(self) -> int:
        return self._offset

    @property
    def native_sql(self) -> Optional[str]:
        return self._native_sql

    @property
    def named_parameters(self) -> Mapping[str, Any]:
        return self._named_parameters

    @property
    def query_hints(self) -> Mapping[str, Any]:
        return self._hints

    @property
    def is_cached(self) -> bool:
        return self._cache_enabled

    def options(self) -> QueryOptions:
        """Execution settings for the executor; unset timeouts fall back to the config."""
        return QueryOptions(
            offset=self._offset,
            limit=self._limit,
            fetch_size=self._fetch_size,
            timeout_seconds=self._timeout_seconds
            or self._config.default_query_timeout_seconds,
            cache_enabled=self._cache_enabled,
            cache_region=self._cache_region,
            cache_ttl_seconds=self._cache_ttl_seconds,
            hints=self._hints,
        )

    # --- Predicate Composition ---

    def _add_predicate(self, predicate: Predicate) -> "QueryBuilder[M]":
        """
        Appends ``predicate`` to the WHERE list.

        With a pending AND/OR the last top-level predicate and the new one are
        folded into one logical node. A pending NOT negates the new predicate
        and joins it to the previous one with AND.
        """
        self._check_collisions(predicate.get_parameters())

        pending = self._pending_operator
        if pending == "NOT":
            predicate = LogicalPredicate("NOT", (predicate,))
            pending = "AND"

        predicates = list(self._predicates)
        if not predicates or pending is None:
            predicates.append(predicate)
        else:
            last = predicates.pop()
            predicates.append(LogicalPredicate(pending, (last, predicate)))
            log.debug(f"Folded last predicate with new one using {pending}")

        new_predicates = tuple(predicates)
        self._check_predicate_limits(new_predicates)
        return self._derive(predicates=new_predicates, pending_operator=None)

    def _check_predicate_limits(self, predicates: Tuple[Predicate, ...]) -> None:
        total = sum(count_predicates(p) for p in predicates)
        if total > self._config.max_predicate_count:
            log.warning(
                f"Predicate count {total} exceeds limit {self._config.max_predicate_count}"
            )
            raise QueryBuildException(
                f"Query has {total} predicates, more than the configured maximum of "
                f"{self._config.max_predicate_count}",
                value=total,
                rule="max_predicate_count",
            )
        depth = max((predicate_depth(p) for p in predicates), default=0)
        if depth > self._config.max_predicate_depth:
            log.warning(
                f"Predicate depth {depth} exceeds limit {self._config.max_predicate_depth}"
            )
            raise QueryBuildException(
                f"Predicate nesting depth {depth} exceeds the configured maximum of "
                f"{self._config.max_predicate_depth}",
                value=depth,
                rule="max_predicate_depth",
            )

    def _check_collisions(self, new_parameters: Mapping[str, Any]) -> None:
        if not self._config.parameter_collision_detection or not new_parameters:
            return
        existing = self._predicate_parameters()
        existing.update(self._named_parameters)
        clashes = _clashing_names(new_parameters, existing)
        if clashes:
            raise QueryBuildException(
                f"Parameter name(s) already bound in this query: {clashes}",
                value=clashes,
                rule="parameter_collision",
            )

    def _require_enabled(self, enabled: bool, kind: str) -> None:
        if not enabled:
            raise QueryBuildException(
                f"{kind} predicates are disabled by configuration",
                value=kind,
                rule="predicate_disabled",
            )

    def _validated_values(self, values: Any) -> Tuple[Any, ...]:
        if values is None:
            raise QueryBuildException("values must not be None", value=None, rule="not_null")
        if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
            raise QueryBuildException(
                f"values must be a list/tuple/set, got {type(values).__name__}",
                value=values,
                rule="type",
            )
        values = tuple(values)
        if not values:
            raise QueryBuildException("values must not be empty", value=values, rule="not_empty")
        if len(values) > self._config.max_in_predicate_size:
            raise QueryBuildException(
                f"IN list has {len(values)} values, more than the configured maximum of "
                f"{self._config.max_in_predicate_size}",
                value=len(values),
                rule="max_in_predicate_size",
            )
        return values

    # --- WHERE Clause ---

    def where(self, field_name: str, operator_or_value: Any, value: Any = _MISSING) -> "QueryBuilder[M]":
        """
        Adds ``field OP :param``.

        ``where("age", 30)`` compares with ``=``; ``where("age", ">", 30)``
        uses the given operator, which must be on the operator whitelist.
        """
        if value is _MISSING:
            operator, value = "=", operator_or_value
        else:
            operator = operator_or_value
        field_name = validate_field_name(field_name)
        operator = validate_operator(operator)
        predicate = SimplePredicate(field_name, operator, value, self._counter.next_name())
        return self._add_predicate(predicate)

    def where_in(self, field_name: str, values: Iterable[Any]) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        self._require_enabled(self._config.in_predicates_enabled, "IN")
        values = self._validated_values(values)
        return self._add_predicate(InPredicate(field_name, values, self._counter.next_name()))

    def where_not_in(self, field_name: str, values: Iterable[Any]) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        self._require_enabled(self._config.in_predicates_enabled, "IN")
        values = self._validated_values(values)
        in_predicate = InPredicate(field_name, values, self._counter.next_name())
        return self._add_predicate(LogicalPredicate("NOT", (in_predicate,)))

    def where_like(self, field_name: str, pattern: str) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        self._require_enabled(self._config.like_predicates_enabled, "LIKE")
        return self._add_predicate(LikePredicate(field_name, pattern, self._counter.next_name()))

    def where_not_like(self, field_name: str, pattern: str) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        self._require_enabled(self._config.like_predicates_enabled, "LIKE")
        like_predicate = LikePredicate(field_name, pattern, self._counter.next_name())
        return self._add_predicate(LogicalPredicate("NOT", (like_predicate,)))

    def where_between(self, field_name: str, start_value: Any, end_value: Any) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        self._require_enabled(self._config.between_predicates_enabled, "BETWEEN")
        predicate = BetweenPredicate(
            field_name,
            start_value,
            end_value,
            self._counter.next_name(),
            self._counter.next_name(),
        )
        return self._add_predicate(predicate)

    def where_is_null(self, field_name: str) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        self._require_enabled(self._config.null_predicates_enabled, "NULL")
        return self._add_predicate(NullPredicate(field_name, True))

    def where_is_not_null(self, field_name: str) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        self._require_enabled(self._config.null_predicates_enabled, "NULL")
        return self._add_predicate(NullPredicate(field_name, False))

    def where_exists(self, subquery: "QueryBuilder[Any]") -> "QueryBuilder[M]":
        return self._add_predicate(SubqueryPredicate("EXISTS", subquery))

    def where_not_exists(self, subquery: "QueryBuilder[Any]") -> "QueryBuilder[M]":
        return self._add_predicate(SubqueryPredicate("NOT EXISTS", subquery))

    def where_in_subquery(self, field_name: str, subquery: "QueryBuilder[Any]") -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        return self._add_predicate(SubqueryInPredicate(field_name, "IN", subquery))

    def where_not_in_subquery(
        self, field_name: str, subquery: "QueryBuilder[Any]"
    ) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        return self._add_predicate(SubqueryInPredicate(field_name, "NOT IN", subquery))

    def custom_function(self, function_name: str, field_name: str, *parameters: Any) -> "QueryBuilder[M]":
        """Adds ``FUNC(field, :pN_0, ...)`` as a predicate, e.g. for boolean SQL functions."""
        function_name = validate_function_name(function_name)
        field_name = validate_field_name(field_name)
        predicate = CustomFunctionPredicate(
            function_name, field_name, parameters, self._counter.next_name()
        )
        return self._add_predicate(predicate)

    # --- Logical Operators ---

    def and_(self) -> "QueryBuilder[M]":
        """Joins the next predicate to the last one with AND."""
        return self._derive(pending_operator="AND")

    def or_(self) -> "QueryBuilder[M]":
        """Joins the next predicate to the last one with OR."""
        return self._derive(pending_operator="OR")

    def not_(self) -> "QueryBuilder[M]":
        """
        Negates the next predicate.

        NOT is unary here: after an existing predicate the result is
        ``(last AND NOT (next))``, and on an empty WHERE list it is
        ``NOT (next)``. Builders that treat NOT as a binary combinator instead
        reject it after an existing predicate and silently drop it on an
        empty list; neither happens here.
        """
        return self._derive(pending_operator="NOT")

    def open_group(self) -> "QueryBuilder[M]":
        return self._derive(group_depth=self._group_depth + 1)

    def close_group(self) -> "QueryBuilder[M]":
        if self._group_depth <= 0:
            raise QueryBuildException(
                "Cannot close group - no open groups",
                value=self._group_depth,
                rule="balanced_groups",
            )
        return self._derive(group_depth=self._group_depth - 1)

    # --- Joins ---

    def _add_join(self, kind: str, association: str) -> "QueryBuilder[M]":
        association = validate_field_name(association)
        return self._derive(join_clauses=self._join_clauses + (f"{kind} {association}",))

    def join(self, association: str) -> "QueryBuilder[M]":
        return self.inner_join(association)

    def inner_join(self, association: str) -> "QueryBuilder[M]":
        return self._add_join("INNER JOIN", association)

    def left_join(self, association: str) -> "QueryBuilder[M]":
        return self._add_join("LEFT JOIN", association)

    def right_join(self, association: str) -> "QueryBuilder[M]":
        return self._add_join("RIGHT JOIN", association)

    def fetch(self, association: str) -> "QueryBuilder[M]":
        return self._add_join("LEFT JOIN FETCH", association)

    # --- Projection and Aggregation ---

    def _validated_fields(self, field_names: Tuple[str, ...]) -> Tuple[str, ...]:
        if not field_names:
            raise QueryBuildException(
                "field names must not be empty", value=field_names, rule="not_empty"
            )
        return tuple(validate_field_name(name) for name in field_names)

    def select(self, *field_names: str) -> "QueryBuilder[M]":
        return self._derive(select_fields=self._validated_fields(field_names))

    def _select_aggregate(self, function: str, field_name: str) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        return self._derive(select_fields=(f"{function}({field_name})",))

    def count_all(self) -> "QueryBuilder[M]":
        return self._derive(select_fields=("COUNT(*)",))

    def count_of(self, field_name: str) -> "QueryBuilder[M]":
        return self._select_aggregate("COUNT", field_name)

    def sum_of(self, field_name: str) -> "QueryBuilder[M]":
        return self._select_aggregate("SUM", field_name)

    def avg_of(self, field_name: str) -> "QueryBuilder[M]":
        return self._select_aggregate("AVG", field_name)

    def min_of(self, field_name: str) -> "QueryBuilder[M]":
        return self._select_aggregate("MIN", field_name)

    def max_of(self, field_name: str) -> "QueryBuilder[M]":
        return self._select_aggregate("MAX", field_name)

    # --- GROUP BY and HAVING ---

    def group_by(self, *field_names: str) -> "QueryBuilder[M]":
        return self._derive(group_by_fields=self._validated_fields(field_names))

    def having(self, aggregated_field: str, operator: str, value: Any) -> "QueryBuilder[M]":
        """Adds ``AGG OP :param`` to the HAVING clause (AND-joined with earlier ones)."""
        aggregated_field = validate_aggregated_field_name(aggregated_field)
        operator = validate_operator(operator)
        predicate = HavingPredicate(aggregated_field, operator, value, self._counter.next_name())
        self._check_collisions(predicate.get_parameters())
        return self._derive(having_predicates=self._having_predicates + (predicate,))

    # --- ORDER BY ---

    def order_by(self, field_name: str, ascending: bool = True) -> "QueryBuilder[M]":
        field_name = validate_field_name(field_name)
        clause = f"{field_name} {'ASC' if ascending else 'DESC'}"
        return self._derive(order_by_clauses=self._order_by_clauses + (clause,))

    def order_by_descending(self, field_name: str) -> "QueryBuilder[M]":
        return self.order_by(field_name, ascending=False)

    # --- Pagination ---

    def _check_page_size(self, size: int, what: str) -> None:
        if size > self._config.max_page_size:
            log.warning(f"Rejected {what} {size}: above max_page_size {self._config.max_page_size}")
            raise QueryBuildException(
                f"{what} {size} exceeds the configured maximum of {self._config.max_page_size}",
                value=size,
                rule="max_page_size",
            )

    def limit(self, max_results: int) -> "QueryBuilder[M]":
        _require_positive(max_results, "limit")
        self._check_page_size(max_results, "limit")
        return self._derive(limit=max_results)

    def offset(self, skip_count: int) -> "QueryBuilder[M]":
        _require_int(skip_count, "offset")
        if skip_count < 0:
            raise QueryBuildException("offset must be non-negative", value=skip_count, rule="non_negative")
        if skip_count > MAX_OFFSET:
            raise QueryBuildException(
                f"offset must not exceed {MAX_OFFSET}", value=skip_count, rule="overflow"
            )
        return self._derive(offset=skip_count)

    def page(self, page_number: int, page_size: Optional[int] = None) -> "QueryBuilder[M]":
        """
        Selects the 1-based page ``page_number`` of ``page_size`` rows.

        ``page_size`` defaults to the configured default page size. Sets
        ``limit = page_size`` and ``offset = (page_number - 1) * page_size``.
        """
        if page_size is None:
            page_size = self._config.default_page_size
        _require_int(page_number, "page_number")
        _require_int(page_size, "page_size")
        if page_number < 1:
            raise QueryBuildException("page_number must be >= 1", value=page_number, rule="min_page")
        if page_size < 1:
            raise QueryBuildException("page_size must be >= 1", value=page_size, rule="min_page_size")
        self._check_page_size(page_size, "page_size")
        new_offset = (page_number - 1) * page_size
        if new_offset > MAX_OFFSET:
            raise QueryBuildException(
                f"page {page_number} of size {page_size} overflows the maximum offset {MAX_OFFSET}",
                value=(page_number, page_size),
                rule="overflow",
            )
        return self._derive(offset=new_offset, limit=page_size)

    # --- Native SQL and Parameters ---

    def native_query(self, sql: str) -> "QueryBuilder[M]":
        """Replaces generated SQL with ``sql``; bind its placeholders via ``parameter``."""
        return self._derive(native_sql=require_non_blank(sql, "sqlQuery"))

    def parameter(self, name: str, value: Any) -> "QueryBuilder[M]":
        name = validate_parameter_name(name)
        self._check_collisions_with_predicates({name: value})
        params = dict(self._named_parameters)
        params[name] = value
        return self._derive(named_parameters=MappingProxyType(params))

    def parameters(self, parameter_map: Mapping[str, Any]) -> "QueryBuilder[M]":
        if parameter_map is None or not isinstance(parameter_map, Mapping):
            raise QueryBuildException(
                "parameters requires a mapping of names to values",
                value=parameter_map,
                rule="type",
            )
        if not parameter_map:
            return self
        validated = {validate_parameter_name(k): v for k, v in parameter_map.items()}
        self._check_collisions_with_predicates(validated)
        params = dict(self._named_parameters)
        params.update(validated)
        return self._derive(named_parameters=MappingProxyType(params))

    def _check_collisions_with_predicates(self, new_parameters: Mapping[str, Any]) -> None:
        # Named parameters may be rebound; only generated placeholders are protected.
        if not self._config.parameter_collision_detection:
            return
        clashes = _clashing_names(new_parameters, self._predicate_parameters())
        if clashes:
            raise QueryBuildException(
                f"Parameter name(s) already used by a predicate: {clashes}",
                value=clashes,
                rule="parameter_collision",
            )

    # --- Caching, Hints and Execution Settings ---

    def cached(
        self, region: Optional[str] = None, ttl_seconds: Optional[int] = None
    ) -> "QueryBuilder[M]":
        """
        Marks the query as cacheable.

        ``region`` and ``ttl_seconds`` are passed through to the executor in
        ``QueryOptions``; this package does not cache anything itself.
        """
        if region is not None:
            region = require_non_blank(region, "cache region")
        if ttl_seconds is not None:
            _require_positive(ttl_seconds, "ttl_seconds")
        return self._derive(
            cache_enabled=True, cache_region=region, cache_ttl_seconds=ttl_seconds
        )

    def hint(self, name: str, value: Any) -> "QueryBuilder[M]":
        name = require_non_blank(name, "hintName")
        hints = dict(self._hints)
        hints[name] = value
        return self._derive(hints=MappingProxyType(hints))

    def fetch_size(self, size: int) -> "QueryBuilder[M]":
        return self._derive(fetch_size=_require_positive(size, "fetchSize"))

    def timeout(self, seconds: int) -> "QueryBuilder[M]":
        return self._derive(timeout_seconds=_require_positive(seconds, "timeoutSeconds"))

    # --- SQL Generation ---

    def _predicate_parameters(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for predicate in self._predicates:
            params.update(predicate.get_parameters())
        for predicate in self._having_predicates:
            params.update(predicate.get_parameters())
        return params

    def get_parameters(self) -> Dict[str, Any]:
        """Every placeholder binding: named parameters, then WHERE and HAVING values."""
        params = dict(self._named_parameters)
        params.update(self._predicate_parameters())
        return params

    def to_sql(self) -> str:
        """Renders the query; a native SQL override is returned verbatim."""
        if self._native_sql is not None and self._native_sql.strip():
            return self._native_sql

        parts: List[str] = [
            "SELECT",
            ", ".join(self._select_fields) if self._select_fields else "*",
            "FROM",
            self._entity_name,
        ]
        if self._join_clauses:
            parts.append(" ".join(self._join_clauses))
        if self._predicates:
            parts.append("WHERE")
            parts.append(" AND ".join(p.to_sql() for p in self._predicates))
        if self._group_by_fields:
            parts.append("GROUP BY")
            parts.append(", ".join(self._group_by_fields))
        if self._having_predicates:
            parts.append("HAVING")
            parts.append(" AND ".join(p.to_sql() for p in self._having_predicates))
        if self._order_by_clauses:
            parts.append("ORDER BY")
            parts.append(", ".join(self._order_by_clauses))
        if self._limit is not None and self._limit > 0:
            parts.append(f"LIMIT {self._limit}")
        if self._offset > 0:
            parts.append(f"OFFSET {self._offset}")
        return " ".join(parts)

    def get_execution_stats(self) -> QueryStats:
        return QueryStats(generated_sql=self.to_sql(), hints=self._hints)

    # --- Execution ---

    def _run(self, operation: str, fetch: Callable[[str, Mapping[str, Any], QueryOptions], R]) -> R:
        sql = self.to_sql()
        params = self.get_parameters()
        options = self.options()
        log.debug(f"Executing {operation} for {self._entity_name}: {sql} {params!r}")
        try:
            return fetch(sql, params, options)
        except QueryExecutionException:
            raise
        except Exception as e:
            log.error(f"Executor failed during {operation} for {self._entity_name}: {e}", exc_info=True)
            raise QueryExecutionException(
                f"Failed to execute {operation} for {self._entity_name}: {e}"
            ) from e

    def find_all(self) -> List[M]:
        return list(self._run("find_all", self._executor.fetch_all))

    def find_one(self) -> Optional[M]:
        target = self if self._limit is not None else self.limit(1)
        results = target._run("find_one", self._executor.fetch_all)
        return results[0] if results else None

    def count(self) -> int:
        return self._run("count", self._executor.fetch_count)

    def exists(self) -> bool:
        return bool(self._run("exists", self._executor.fetch_exists))

    async def find_all_async(self) -> List[M]:
        return await asyncio.to_thread(self.find_all)

    async def find_one_async(self) -> Optional[M]:
        return await asyncio.to_thread(self.find_one)

    async def count_async(self) -> int:
        return await asyncio.to_thread(self.count)

    def build(self) -> CompiledQuery[M]:
        """
        Runs the query once and captures its results with the SQL.

        With ``query_statistics_enabled`` the compiled query also carries a
        ``QueryStats`` holding the execution time and row count.
        """
        started = time.perf_counter()
        results = self.find_all()
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        stats = None
        if self._config.query_statistics_enabled:
            stats = QueryStats(
                generated_sql=self.to_sql(),
                hints=self._hints,
                execution_time_ms=elapsed_ms,
                result_count=len(results),
            )
        compiled = CompiledQuery(results=results, sql=self.to_sql(), stats=stats)
        log.info(f"Built query for {self._entity_name} in {elapsed_ms} ms: {compiled.sql}")
        return compiled

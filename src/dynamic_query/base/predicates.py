# src/dynamic_query/base/predicates.py

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Tuple, Union

from .exceptions import QueryBuildException
from .validators import (
    require_non_blank,
    validate_aggregated_field_name,
    validate_field_name,
    validate_function_name,
    validate_operator,
    validate_parameter_name,
)

if TYPE_CHECKING:
    from .query import QueryBuilder

# --- Setup Logging ---
log = logging.getLogger(__name__)

LOGICAL_OPERATORS = ("AND", "OR", "NOT")
SUBQUERY_OPERATORS = ("EXISTS", "NOT EXISTS")
SUBQUERY_IN_OPERATORS = ("IN", "NOT IN")


# --- Predicate Base ---
class Predicate:
    """
    Base class for filter nodes.

    Every node renders its own SQL fragment and its own parameter bindings.
    The concrete variants below form a closed set; rendering dispatches over
    them in ``predicate_sql`` and ``predicate_parameters``.
    """

    def to_sql(self) -> str:
        return predicate_sql(self)

    def get_parameters(self) -> Dict[str, Any]:
        return predicate_parameters(self)


def _set(obj: Any, name: str, value: Any) -> None:
    """Assigns a normalized value on a frozen dataclass during __post_init__."""
    object.__setattr__(obj, name, value)


def _require_subquery(subquery: Any) -> None:
    if subquery is None:
        raise QueryBuildException("subquery must not be None", value=subquery, rule="not_null")
    if not callable(getattr(subquery, "to_sql", None)) or not callable(
        getattr(subquery, "get_parameters", None)
    ):
        raise QueryBuildException(
            f"subquery must be a query builder, got {type(subquery).__name__}",
            value=subquery,
            rule="type",
        )


# --- Leaf Predicates ---
@dataclass(frozen=True)
class SimplePredicate(Predicate):
    """``field OP :param_name``"""

    field: str
    operator: str
    value: Any
    param_name: str

    def __post_init__(self):
        _set(self, "field", validate_field_name(self.field))
        _set(self, "operator", validate_operator(self.operator))
        _set(self, "param_name", validate_parameter_name(self.param_name))


@dataclass(frozen=True)
class InPredicate(Predicate):
    """``field IN (:base_0, :base_1, ...)``, one placeholder per value."""

    field: str
    values: Tuple[Any, ...]
    base_param_name: str

    def __post_init__(self):
        _set(self, "field", validate_field_name(self.field))
        if self.values is None:
            raise QueryBuildException("Values list must not be None", value=None, rule="not_null")
        if isinstance(self.values, (str, bytes, Mapping)) or not isinstance(self.values, Iterable):
            raise QueryBuildException(
                f"Values must be a list/tuple/set, got {type(self.values).__name__}",
                value=self.values,
                rule="type",
            )
        values = tuple(self.values)
        if not values:
            raise QueryBuildException("Values list must not be empty", value=values, rule="not_empty")
        _set(self, "values", values)
        _set(self, "base_param_name", validate_parameter_name(self.base_param_name))

    def placeholder_names(self) -> Tuple[str, ...]:
        return tuple(f"{self.base_param_name}_{i}" for i in range(len(self.values)))


@dataclass(frozen=True)
class LikePredicate(Predicate):
    """``field LIKE :param_name``"""

    field: str
    pattern: str
    param_name: str

    def __post_init__(self):
        _set(self, "field", validate_field_name(self.field))
        if self.pattern is None:
            raise QueryBuildException("Pattern must not be None", value=None, rule="not_null")
        if not isinstance(self.pattern, str):
            raise QueryBuildException(
                f"Pattern must be a string, got {type(self.pattern).__name__}",
                value=self.pattern,
                rule="type",
            )
        _set(self, "param_name", validate_parameter_name(self.param_name))


@dataclass(frozen=True)
class BetweenPredicate(Predicate):
    """``field BETWEEN :start AND :end``; the bounds keep their given order."""

    field: str
    start_value: Any
    end_value: Any
    start_param_name: str
    end_param_name: str

    def __post_init__(self):
        _set(self, "field", validate_field_name(self.field))
        start = validate_parameter_name(self.start_param_name)
        end = validate_parameter_name(self.end_param_name)
        if start == end:
            raise QueryBuildException(
                "Start and end parameter names must be different to avoid conflicts",
                value=start,
                rule="distinct_parameters",
            )
        _set(self, "start_param_name", start)
        _set(self, "end_param_name", end)


@dataclass(frozen=True)
class NullPredicate(Predicate):
    """``field IS NULL`` or ``field IS NOT NULL``; binds nothing."""

    field: str
    is_null: bool = True

    def __post_init__(self):
        _set(self, "field", validate_field_name(self.field))
        _set(self, "is_null", bool(self.is_null))


@dataclass(frozen=True)
class HavingPredicate(Predicate):
    """``AGG(field) OP :param_name`` for the HAVING clause."""

    aggregated_field: str
    operator: str
    value: Any
    param_name: str

    def __post_init__(self):
        _set(self, "aggregated_field", validate_aggregated_field_name(self.aggregated_field))
        _set(self, "operator", validate_operator(self.operator))
        _set(self, "param_name", validate_parameter_name(self.param_name))


@dataclass(frozen=True)
class CustomFunctionPredicate(Predicate):
    """``FUNC(field[, :prefix_0, :prefix_1, ...])``"""

    function_name: str
    field_name: str
    parameters: Tuple[Any, ...] = ()
    param_prefix: str = "func"

    def __post_init__(self):
        _set(self, "function_name", validate_function_name(self.function_name))
        _set(self, "field_name", validate_field_name(self.field_name))
        _set(self, "parameters", tuple(self.parameters) if self.parameters is not None else ())
        _set(self, "param_prefix", validate_parameter_name(self.param_prefix))


# --- Composite Predicates ---
@dataclass(frozen=True)
class LogicalPredicate(Predicate):
    """AND/OR over one or more children, or NOT over exactly one."""

    operator: str
    children: Tuple[Predicate, ...]

    def __post_init__(self):
        op = require_non_blank(self.operator, "Logical operator").upper()
        if op not in LOGICAL_OPERATORS:
            raise QueryBuildException(
                f"Invalid logical operator: {self.operator!r}. Allowed operators are: "
                f"AND, OR, NOT",
                value=self.operator,
                rule="logical_operator",
            )
        if self.children is None:
            raise QueryBuildException("Children list must not be None", value=None, rule="not_null")
        children = tuple(self.children)
        if not children:
            raise QueryBuildException(
                "Children list must not be empty", value=children, rule="not_empty"
            )
        for i, child in enumerate(children):
            if child is None:
                raise QueryBuildException(
                    f"Child predicate at index {i} must not be None",
                    value=children,
                    rule="not_null",
                )
            if not isinstance(child, Predicate):
                raise QueryBuildException(
                    f"Child predicate at index {i} must be a Predicate, got "
                    f"{type(child).__name__}",
                    value=child,
                    rule="type",
                )
        if op == "NOT" and len(children) != 1:
            raise QueryBuildException(
                f"NOT operator must have exactly one child predicate, but got {len(children)}",
                value=children,
                rule="not_arity",
            )
        _set(self, "operator", op)
        _set(self, "children", children)
        log.debug(f"Composed {op} predicate over {len(children)} child(ren)")


@dataclass(frozen=True, eq=False)
class SubqueryPredicate(Predicate):
    """``EXISTS (<subquery>)`` or ``NOT EXISTS (<subquery>)``"""

    operator: str
    subquery: "QueryBuilder"

    def __post_init__(self):
        op = require_non_blank(self.operator, "Subquery operator").upper()
        if op not in SUBQUERY_OPERATORS:
            raise QueryBuildException(
                "operator must be 'EXISTS' or 'NOT EXISTS'", value=self.operator, rule="subquery_operator"
            )
        _require_subquery(self.subquery)
        _set(self, "operator", op)


@dataclass(frozen=True, eq=False)
class SubqueryInPredicate(Predicate):
    """``field IN (<subquery>)`` or ``field NOT IN (<subquery>)``"""

    field_name: str
    operator: str
    subquery: "QueryBuilder"

    def __post_init__(self):
        _set(self, "field_name", validate_field_name(self.field_name))
        op = require_non_blank(self.operator, "Subquery operator").upper()
        if op not in SUBQUERY_IN_OPERATORS:
            raise QueryBuildException(
                "operator must be 'IN' or 'NOT IN'", value=self.operator, rule="subquery_operator"
            )
        _require_subquery(self.subquery)
        _set(self, "operator", op)


PredicateNode = Union[
    SimplePredicate,
    InPredicate,
    LikePredicate,
    BetweenPredicate,
    NullPredicate,
    HavingPredicate,
    CustomFunctionPredicate,
    LogicalPredicate,
    SubqueryPredicate,
    SubqueryInPredicate,
]


# --- Rendering ---
def predicate_sql(node: Predicate) -> str:
    """Renders a predicate tree to its SQL fragment."""
    if isinstance(node, SimplePredicate):
        return f"{node.field} {node.operator} :{node.param_name}"
    if isinstance(node, InPredicate):
        placeholders = ", ".join(f":{name}" for name in node.placeholder_names())
        return f"{node.field} IN ({placeholders})"
    if isinstance(node, LikePredicate):
        return f"{node.field} LIKE :{node.param_name}"
    if isinstance(node, BetweenPredicate):
        return f"{node.field} BETWEEN :{node.start_param_name} AND :{node.end_param_name}"
    if isinstance(node, NullPredicate):
        return f"{node.field} IS NULL" if node.is_null else f"{node.field} IS NOT NULL"
    if isinstance(node, HavingPredicate):
        return f"{node.aggregated_field} {node.operator} :{node.param_name}"
    if isinstance(node, CustomFunctionPredicate):
        args = [node.field_name]
        args.extend(f":{node.param_prefix}_{i}" for i in range(len(node.parameters)))
        return f"{node.function_name}({', '.join(args)})"
    if isinstance(node, LogicalPredicate):
        if node.operator == "NOT":
            return f"NOT ({predicate_sql(node.children[0])})"
        joined = f" {node.operator} ".join(predicate_sql(child) for child in node.children)
        return f"({joined})"
    if isinstance(node, SubqueryPredicate):
        return f"{node.operator} ({node.subquery.to_sql()})"
    if isinstance(node, SubqueryInPredicate):
        return f"{node.field_name} {node.operator} ({node.subquery.to_sql()})"
    raise TypeError(f"Unsupported predicate type: {type(node).__name__}")


def predicate_parameters(node: Predicate) -> Dict[str, Any]:
    """Collects the placeholder bindings a predicate tree introduces."""
    if isinstance(node, (SimplePredicate, HavingPredicate)):
        return {node.param_name: node.value}
    if isinstance(node, InPredicate):
        return dict(zip(node.placeholder_names(), node.values))
    if isinstance(node, LikePredicate):
        return {node.param_name: node.pattern}
    if isinstance(node, BetweenPredicate):
        return {
            node.start_param_name: node.start_value,
            node.end_param_name: node.end_value,
        }
    if isinstance(node, NullPredicate):
        return {}
    if isinstance(node, CustomFunctionPredicate):
        return {f"{node.param_prefix}_{i}": value for i, value in enumerate(node.parameters)}
    if isinstance(node, LogicalPredicate):
        params: Dict[str, Any] = {}
        for child in node.children:
            params.update(predicate_parameters(child))
        return params
    if isinstance(node, (SubqueryPredicate, SubqueryInPredicate)):
        return dict(node.subquery.get_parameters())
    raise TypeError(f"Unsupported predicate type: {type(node).__name__}")


# --- Tree Metrics ---
def predicate_depth(node: Predicate) -> int:
    """
    Nesting depth of logical composition; a leaf has depth 1.

    A run of the same AND/OR operator counts as one level, so ``a AND b AND c``
    folded pairwise is as deep as ``a AND b``. Only a change of operator or a
    NOT adds a level.
    """
    if not isinstance(node, LogicalPredicate):
        return 1
    return max(_child_depth(node.operator, child) for child in node.children)


def _child_depth(parent_operator: str, child: Predicate) -> int:
    depth = predicate_depth(child)
    if (
        parent_operator != "NOT"
        and isinstance(child, LogicalPredicate)
        and child.operator == parent_operator
    ):
        return depth
    return depth + 1


def count_predicates(node: Predicate) -> int:
    """Number of non-logical nodes in a predicate tree."""
    if isinstance(node, LogicalPredicate):
        return sum(count_predicates(child) for child in node.children)
    return 1

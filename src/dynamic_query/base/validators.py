# src/dynamic_query/base/validators.py

import logging
import re
from typing import Any, FrozenSet

from .exceptions import QueryBuildException

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Patterns and Whitelists ---
FIELD_PATTERN = re.compile(r"[A-Za-z0-9_.]+")
PARAMETER_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9_]*")
AGGREGATION_PATTERN = re.compile(r"[A-Za-z]+\([A-Za-z0-9_.*]+\)")
FUNCTION_PATTERN = PARAMETER_PATTERN

ALLOWED_OPERATORS: FrozenSet[str] = frozenset(
    {
        "=",
        "!=",
        "<>",
        "<",
        "<=",
        ">",
        ">=",
        "LIKE",
        "NOT LIKE",
        "ILIKE",
        "NOT ILIKE",
        "IS",
        "IS NOT",
        "IN",
        "NOT IN",
        "BETWEEN",
        "NOT BETWEEN",
        "EXISTS",
        "NOT EXISTS",
    }
)


# --- Helper Functions ---
def require_non_blank(value: Any, what: str) -> str:
    """Returns the trimmed string, rejecting None, non-strings and blanks."""
    if value is None:
        raise QueryBuildException(f"{what} must not be None", value=value, rule="not_null")
    if not isinstance(value, str):
        raise QueryBuildException(
            f"{what} must be a string, got {type(value).__name__}",
            value=value,
            rule="type",
        )
    trimmed = value.strip()
    if not trimmed:
        raise QueryBuildException(f"{what} must not be empty", value=value, rule="not_blank")
    return trimmed


# --- Validators ---
def validate_field_name(field_name: Any) -> str:
    """Validates a column/association name and returns it trimmed."""
    trimmed = require_non_blank(field_name, "Field name")
    if not FIELD_PATTERN.fullmatch(trimmed):
        log.debug(f"Rejected field name: {field_name!r}")
        raise QueryBuildException(
            f"Field name contains invalid characters: {field_name!r}. "
            f"Valid pattern is [A-Za-z0-9_.]+",
            value=field_name,
            rule="field_pattern",
        )
    return trimmed


def validate_parameter_name(param_name: Any) -> str:
    """Validates a named-placeholder identifier and returns it trimmed."""
    trimmed = require_non_blank(param_name, "Parameter name")
    if not PARAMETER_PATTERN.fullmatch(trimmed):
        log.debug(f"Rejected parameter name: {param_name!r}")
        raise QueryBuildException(
            f"Parameter name contains invalid characters: {param_name!r}. "
            f"Parameter names must start with a letter and contain only letters, "
            f"numbers, and underscores",
            value=param_name,
            rule="parameter_pattern",
        )
    return trimmed


def validate_aggregated_field_name(aggregated_field_name: Any) -> str:
    """
    Validates a HAVING target.

    Accepts either a plain field name (``dept``) or a single aggregation
    function applied to a field or ``*`` (``COUNT(*)``, ``SUM(salary)``).
    """
    trimmed = require_non_blank(aggregated_field_name, "Aggregated field name")
    if FIELD_PATTERN.fullmatch(trimmed) or AGGREGATION_PATTERN.fullmatch(trimmed):
        return trimmed
    log.debug(f"Rejected aggregated field name: {aggregated_field_name!r}")
    raise QueryBuildException(
        f"Aggregated field name contains invalid characters: {aggregated_field_name!r}. "
        f"Must be either a valid field name [A-Za-z0-9_.]+, or an aggregation "
        f"function like COUNT(field)",
        value=aggregated_field_name,
        rule="aggregate_pattern",
    )


def validate_operator(operator: Any) -> str:
    """Checks an operator against the whitelist and returns its normalized form."""
    trimmed = require_non_blank(operator, "Operator")
    normalized = trimmed.upper()
    if normalized not in ALLOWED_OPERATORS:
        log.debug(f"Rejected operator: {operator!r}")
        raise QueryBuildException(
            f"Invalid operator: {operator!r}. Allowed operators are: "
            f"{sorted(ALLOWED_OPERATORS)}",
            value=operator,
            rule="operator_whitelist",
        )
    return normalized


def validate_function_name(function_name: Any) -> str:
    """Validates a SQL function identifier and returns it upper-cased."""
    trimmed = require_non_blank(function_name, "Function name")
    if not FUNCTION_PATTERN.fullmatch(trimmed):
        raise QueryBuildException(
            f"Function name contains invalid characters: {function_name!r}. "
            f"Function names must start with a letter and contain only letters, "
            f"numbers, and underscores",
            value=function_name,
            rule="function_pattern",
        )
    return trimmed.upper()

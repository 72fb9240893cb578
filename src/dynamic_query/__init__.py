# src/dynamic_query/__init__.py

"""
Dynamic Query Library Initialization.

This package builds parameterized SQL through an immutable fluent API. Field
names, operators and parameter names are checked against fixed whitelists so
caller input only ever reaches the database as bound parameter values.

It initializes a logger with a NullHandler and makes the builder, predicate
types, configuration and exceptions available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Exports
# --------------------------------------------------------------------------
from .base.exceptions import (
    DynamicQueryException,
    QueryBuildException,
    QueryExecutionException,
)
from .base.config import (
    CoreConfig,
    default_config,
    development_config,
    high_performance_config,
)
from .base.naming import ParameterCounter

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
# QueryBuilder is the entry point: QueryBuilder.for_entity(User).where(...)
from .base.query import QueryBuilder
from .base.compiled import CompiledQuery, QueryOptions, QueryStats
from .base.interfaces import NullExecutor, QueryExecutor
from .base.predicates import (
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
)
from .base.validators import (
    validate_aggregated_field_name,
    validate_field_name,
    validate_operator,
    validate_parameter_name,
)

__all__ = [
    # Exceptions
    "DynamicQueryException",
    "QueryBuildException",
    "QueryExecutionException",
    # Configuration
    "CoreConfig",
    "default_config",
    "development_config",
    "high_performance_config",
    # Query
    "QueryBuilder",
    "ParameterCounter",
    "CompiledQuery",
    "QueryOptions",
    "QueryStats",
    # Execution
    "QueryExecutor",
    "NullExecutor",
    # Predicates
    "Predicate",
    "SimplePredicate",
    "InPredicate",
    "LikePredicate",
    "BetweenPredicate",
    "NullPredicate",
    "HavingPredicate",
    "CustomFunctionPredicate",
    "LogicalPredicate",
    "SubqueryPredicate",
    "SubqueryInPredicate",
    # Validation
    "validate_field_name",
    "validate_parameter_name",
    "validate_aggregated_field_name",
    "validate_operator",
    # Logging
    "logger",
]

# tests/base/conftest.py
from typing import Any, List, Mapping, Optional

import pytest

from dynamic_query.base.compiled import QueryOptions
from dynamic_query.base.config import CoreConfig
from dynamic_query.base.interfaces import QueryExecutor
from dynamic_query.base.query import QueryBuilder


# Define test entity classes
class User:
    name: str
    age: int
    email: Optional[str]
    active: bool
    status: str
    dept: str

    def __init__(self, name="", age=0, email=None, active=True, status="A", dept=""):
        self.name = name
        self.age = age
        self.email = email
        self.active = active
        self.status = status
        self.dept = dept


class Order:
    id: int
    user_id: int
    total: float

    def __init__(self, id=0, user_id=0, total=0.0):
        self.id = id
        self.user_id = user_id
        self.total = total


class RecordingExecutor(QueryExecutor[Any]):
    """Executor that records every call and returns canned results."""

    def __init__(self, rows: Optional[List[Any]] = None, count: int = 0, exists: bool = False):
        self.rows = list(rows or [])
        self.count_result = count
        self.exists_result = exists
        self.calls: List[tuple] = []

    def fetch_all(self, sql: str, parameters: Mapping[str, Any], options: QueryOptions):
        self.calls.append(("fetch_all", sql, dict(parameters), options))
        return list(self.rows)

    def fetch_count(self, sql: str, parameters: Mapping[str, Any], options: QueryOptions):
        self.calls.append(("fetch_count", sql, dict(parameters), options))
        return self.count_result

    def fetch_exists(self, sql: str, parameters: Mapping[str, Any], options: QueryOptions):
        self.calls.append(("fetch_exists", sql, dict(parameters), options))
        return self.exists_result


class FailingExecutor(QueryExecutor[Any]):
    def fetch_all(self, sql, parameters, options):
        raise ConnectionError("database unavailable")

    def fetch_count(self, sql, parameters, options):
        raise ConnectionError("database unavailable")

    def fetch_exists(self, sql, parameters, options):
        raise ConnectionError("database unavailable")


# --- Fixtures ---
@pytest.fixture
def user_model():
    return User


@pytest.fixture
def order_model():
    return Order


@pytest.fixture
def qb(user_model) -> QueryBuilder[User]:
    return QueryBuilder.for_entity(user_model)


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor(rows=[User(name="Alice"), User(name="Bob")], count=2, exists=True)


@pytest.fixture
def failing_executor() -> FailingExecutor:
    return FailingExecutor()


@pytest.fixture
def strict_config() -> CoreConfig:
    return CoreConfig(
        max_predicate_count=3,
        max_predicate_depth=2,
        max_in_predicate_size=3,
        default_page_size=5,
        max_page_size=50,
    )

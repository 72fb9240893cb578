# tests/base/query/test_execution.py

import logging

import pytest

from dynamic_query.base.compiled import CompiledQuery, QueryOptions
from dynamic_query.base.config import CoreConfig
from dynamic_query.base.exceptions import QueryExecutionException
from dynamic_query.base.interfaces import NullExecutor
from dynamic_query.base.query import QueryBuilder


@pytest.fixture
def recording_qb(user_model, recording_executor):
    return QueryBuilder.for_entity(user_model, executor=recording_executor)


@pytest.fixture
def failing_qb(user_model, failing_executor):
    return QueryBuilder.for_entity(user_model, executor=failing_executor)


def test_null_executor_is_the_default(qb):
    assert qb.find_all() == []
    assert qb.find_one() is None
    assert qb.count() == 0
    assert qb.exists() is False


def test_null_executor_matches_nothing():
    executor = NullExecutor()
    options = QueryOptions()
    assert executor.fetch_all("SELECT 1", {}, options) == []
    assert executor.fetch_count("SELECT 1", {}, options) == 0
    assert executor.fetch_exists("SELECT 1", {}, options) is False


def test_find_all_passes_sql_parameters_and_options(recording_qb, recording_executor):
    query = recording_qb.where("active", True).page(2, 10).fetch_size(50).hint("readOnly", True)
    rows = query.find_all()

    assert [u.name for u in rows] == ["Alice", "Bob"]
    name, sql, params, options = recording_executor.calls[-1]
    assert name == "fetch_all"
    assert sql == "SELECT * FROM User WHERE active = :p1 LIMIT 10 OFFSET 10"
    assert params == {"p1": True}
    assert options.offset == 10
    assert options.limit == 10
    assert options.fetch_size == 50
    assert options.hints == {"readOnly": True}


def test_find_one_limits_to_a_single_row(recording_qb, recording_executor):
    user = recording_qb.where("name", "Alice").find_one()

    assert user.name == "Alice"
    _, sql, _, options = recording_executor.calls[-1]
    assert sql.endswith("LIMIT 1")
    assert options.limit == 1


def test_find_one_keeps_an_explicit_limit(recording_qb, recording_executor):
    recording_qb.limit(5).find_one()
    _, sql, _, _ = recording_executor.calls[-1]
    assert sql == "SELECT * FROM User LIMIT 5"


def test_count_and_exists_use_their_own_executor_calls(recording_qb, recording_executor):
    query = recording_qb.where("age", ">", 18)
    assert query.count() == 2
    assert query.exists() is True
    assert [call[0] for call in recording_executor.calls] == ["fetch_count", "fetch_exists"]


def test_execution_does_not_change_the_builder(recording_qb):
    query = recording_qb.where("a", 1)
    before = query.to_sql()
    query.find_one()
    assert query.to_sql() == before
    assert query.current_limit is None


def test_options_fall_back_to_configured_timeout(recording_qb, recording_executor):
    recording_qb.find_all()
    _, _, _, options = recording_executor.calls[-1]
    assert options.timeout_seconds == recording_qb.config.default_query_timeout_seconds

    recording_qb.timeout(5).find_all()
    _, _, _, options = recording_executor.calls[-1]
    assert options.timeout_seconds == 5


def test_cache_settings_reach_the_executor(recording_qb, recording_executor):
    recording_qb.cached(region="users", ttl_seconds=60).find_all()
    _, _, _, options = recording_executor.calls[-1]
    assert options.cache_enabled is True
    assert options.cache_region == "users"
    assert options.cache_ttl_seconds == 60


def test_executor_errors_are_wrapped(failing_qb):
    with pytest.raises(QueryExecutionException, match="database unavailable") as excinfo:
        failing_qb.where("a", 1).find_all()
    assert isinstance(excinfo.value.__cause__, ConnectionError)

    with pytest.raises(QueryExecutionException):
        failing_qb.count()
    with pytest.raises(QueryExecutionException):
        failing_qb.exists()


def test_executor_errors_are_logged(failing_qb, propagating_logs, caplog):
    with caplog.at_level(logging.ERROR, logger="dynamic_query"):
        with pytest.raises(QueryExecutionException):
            failing_qb.find_all()
    assert any("Executor failed" in record.getMessage() for record in caplog.records)


def test_build_captures_results_and_sql(recording_qb):
    compiled = recording_qb.where("active", True).build()

    assert isinstance(compiled, CompiledQuery)
    assert compiled.get_sql() == "SELECT * FROM User WHERE active = :p1"
    assert [u.name for u in compiled.execute()] == ["Alice", "Bob"]
    assert compiled.execute_one().name == "Alice"
    assert compiled.execute_count() == 2


def test_build_records_statistics(recording_qb):
    compiled = recording_qb.where("active", True).hint("readOnly", True).build()

    stats = compiled.get_stats()
    assert stats.generated_sql == compiled.get_sql()
    assert stats.result_count == 2
    assert stats.execution_time_ms >= 0
    assert stats.hints == {"readOnly": True}


def test_build_skips_statistics_when_disabled(user_model, recording_executor):
    config = CoreConfig(query_statistics_enabled=False)
    qb = QueryBuilder.for_entity(user_model, config=config, executor=recording_executor)

    compiled = qb.where("active", True).build()
    assert compiled.get_stats() is None
    assert compiled.execute_count() == 2


def test_empty_compiled_query():
    compiled = CompiledQuery()
    assert compiled.execute() == []
    assert compiled.execute_one() is None
    assert compiled.execute_count() == 0
    assert compiled.get_sql() == ""
    assert compiled.get_stats() is None


def test_execution_stats_snapshot(qb):
    stats = qb.where("a", 1).hint("timeout", 3).get_execution_stats()
    assert stats.generated_sql == "SELECT * FROM User WHERE a = :p1"
    assert stats.hints == {"timeout": 3}
    assert stats.result_count == 0
    assert stats.execution_time_ms == 0
    assert stats.timestamp > 0


@pytest.mark.asyncio
async def test_async_variants(recording_qb, recording_executor):
    query = recording_qb.where("active", True)

    rows = await query.find_all_async()
    assert len(rows) == 2
    user = await query.find_one_async()
    assert user.name == "Alice"
    assert await query.count_async() == 2
    assert [call[0] for call in recording_executor.calls] == [
        "fetch_all",
        "fetch_all",
        "fetch_count",
    ]


@pytest.mark.asyncio
async def test_async_errors_are_wrapped(failing_qb):
    with pytest.raises(QueryExecutionException):
        await failing_qb.find_all_async()

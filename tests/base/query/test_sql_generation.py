# tests/base/query/test_sql_generation.py

import pytest

from dynamic_query.base.query import QueryBuilder


def test_empty_builder(qb):
    assert qb.to_sql() == "SELECT * FROM User"
    assert qb.get_parameters() == {}


def test_full_clause_order(qb):
    sql = (
        qb.select("dept", "name")
        .left_join("orders")
        .where("active", True)
        .group_by("dept", "name")
        .having("COUNT(*)", ">", 1)
        .order_by("dept")
        .order_by_descending("name")
        .page(3, 10)
        .to_sql()
    )
    assert sql == (
        "SELECT dept, name FROM User LEFT JOIN orders WHERE active = :p1 "
        "GROUP BY dept, name HAVING COUNT(*) > :p2 ORDER BY dept ASC, name DESC "
        "LIMIT 10 OFFSET 20"
    )


def test_clause_order_is_independent_of_call_order(qb):
    forward = qb.where("a", 1).order_by("a").limit(5).group_by("a")
    backward = qb.group_by("a").limit(5).order_by("a").where("a", 1)
    strip = lambda sql: sql.replace(":p1", ":?").replace(":p2", ":?")
    assert strip(forward.to_sql()) == strip(backward.to_sql())


@pytest.mark.parametrize(
    "method, expected",
    [
        ("join", "INNER JOIN orders"),
        ("inner_join", "INNER JOIN orders"),
        ("left_join", "LEFT JOIN orders"),
        ("right_join", "RIGHT JOIN orders"),
        ("fetch", "LEFT JOIN FETCH orders"),
    ],
)
def test_join_kinds(qb, method, expected):
    assert getattr(qb, method)("orders").to_sql() == f"SELECT * FROM User {expected}"


def test_multiple_joins_keep_call_order(qb):
    sql = qb.inner_join("orders").left_join("orders.items").to_sql()
    assert sql == "SELECT * FROM User INNER JOIN orders LEFT JOIN orders.items"


@pytest.mark.parametrize(
    "method, expected",
    [
        ("count_of", "COUNT(id)"),
        ("sum_of", "SUM(id)"),
        ("avg_of", "AVG(id)"),
        ("min_of", "MIN(id)"),
        ("max_of", "MAX(id)"),
    ],
)
def test_aggregate_projections(qb, method, expected):
    assert getattr(qb, method)("id").to_sql() == f"SELECT {expected} FROM User"


def test_count_all_replaces_select(qb):
    assert qb.select("name").count_all().to_sql() == "SELECT COUNT(*) FROM User"


def test_select_replaces_previous_projection(qb):
    assert qb.select("a").select("b", "c").to_sql() == "SELECT b, c FROM User"


def test_multiple_having_predicates_are_and_joined(qb):
    sql = qb.group_by("dept").having("COUNT(*)", ">", 5).having("AVG(age)", "<", 40).to_sql()
    assert sql == "SELECT * FROM User GROUP BY dept HAVING COUNT(*) > :p1 AND AVG(age) < :p2"


def test_native_query_bypasses_generated_sql(qb):
    result = (
        qb.where("ignored", 1)
        .native_query("  SELECT * FROM users WHERE id = :id  ")
        .parameter("id", 7)
    )
    assert result.to_sql() == "SELECT * FROM users WHERE id = :id"
    assert result.get_parameters() == {"id": 7, "p1": 1}


def test_parameters_union_named_where_and_having(qb):
    result = (
        qb.parameter("tenant", "acme")
        .where("a", 1)
        .where_in("b", ["x"])
        .group_by("a")
        .having("SUM(a)", ">=", 10)
    )
    assert result.get_parameters() == {"tenant": "acme", "p1": 1, "p2_0": "x", "p3": 10}


def test_get_parameters_returns_fresh_dict(qb):
    result = qb.where("a", 1)
    params = result.get_parameters()
    params["p1"] = "tampered"
    assert result.get_parameters() == {"p1": 1}


def test_rendering_is_idempotent(qb):
    result = qb.where("a", 1).or_().where_like("b", "%x").page(2, 5)
    assert result.to_sql() == result.to_sql()
    assert result.get_parameters() == result.get_parameters()


def test_exists_and_not_exists_subqueries(qb):
    orders = qb.subquery("orders").where("orders.user_id", "=", 5)
    result = qb.where_exists(orders).or_().where_not_exists(orders)
    assert result.to_sql() == (
        "SELECT * FROM User WHERE (EXISTS (SELECT * FROM orders WHERE orders.user_id = :p1) "
        "OR NOT EXISTS (SELECT * FROM orders WHERE orders.user_id = :p1))"
    )


def test_not_in_subquery(qb):
    banned = qb.subquery("bans").select("user_id")
    assert qb.where_not_in_subquery("id", banned).to_sql() == (
        "SELECT * FROM User WHERE id NOT IN (SELECT user_id FROM bans)"
    )


def test_repr_shows_sql(qb):
    assert "SELECT * FROM User" in repr(qb)

# -*- coding: utf-8 -*-

import pytest

from dbferry.db import Registry
from dbferry.exceptions import DatabaseError, InvalidIdentifier, NotConnected


def _count(registry, role, table="users"):
    return registry.query(role, "SELECT COUNT(*) AS c FROM `%s`" % table)[0]["c"]


def test_connect_and_roles(registry):
    assert sorted(registry.roles()) == ["master", "slave"]
    assert registry.is_connected("master")
    assert not registry.is_connected("stats")
    assert registry.dialect("master") in ("sqlite", "mysql", "mariadb")


def test_not_connected(registry):
    with pytest.raises(NotConnected) as exc:
        registry.query("nope", "SELECT 1")
    assert str(exc.value) == "No connection found for nope"


def test_connect_failure():
    r = Registry()
    with pytest.raises(DatabaseError):
        r.connect("master", "sqlite:////nonexistent/dir/x.db")
    assert not r.is_connected("master")


def test_reconnect_replaces(registry, master_dsn):
    old = registry.connection("master")
    registry.connect("master", master_dsn)
    assert registry.connection("master") is not old
    assert old.closed


def test_query_execute_autocommit(registry, master_dsn):
    n = registry.execute(
        "master", "INSERT INTO `users` (`id`, `name`) VALUES (:id, :name)",
        {"id": 1, "name": "A"})
    assert n == 1
    rows = registry.query("master", "SELECT `id`, `name` FROM `users`")
    assert rows == [{"id": 1, "name": "A"}]

    # visible from another connection without any commit
    other = Registry()
    other.connect("master", master_dsn)
    assert _count(other, "master") == 1
    other.close_all()


def test_driver_error(registry):
    with pytest.raises(DatabaseError) as exc:
        registry.query("master", "SELECT * FROM `no_such_table`")
    assert exc.value.orig is not None
    assert "no_such_table" in str(exc.value)


def test_transaction_commit(registry):
    registry.begin_transaction("slave")
    assert registry.in_transaction("slave")
    registry.execute("slave", "INSERT INTO `tags` (`id`, `label`) "
                              "VALUES (1, 'a')")
    registry.commit("slave")
    assert not registry.in_transaction("slave")
    assert _count(registry, "slave", "tags") == 1


def test_transaction_rollback(registry):
    registry.begin_transaction("slave")
    registry.execute("slave", "INSERT INTO `tags` (`id`, `label`) "
                              "VALUES (1, 'a')")
    registry.rollback("slave")
    assert _count(registry, "slave", "tags") == 0


def test_transaction_misuse(registry):
    with pytest.raises(DatabaseError):
        registry.commit("slave")
    with pytest.raises(DatabaseError):
        registry.rollback("slave")

    registry.begin_transaction("slave")
    with pytest.raises(DatabaseError):
        registry.begin_transaction("slave")
    registry.rollback("slave")

    with pytest.raises(NotConnected):
        registry.begin_transaction("nope")


def test_columns(registry):
    assert registry.columns("master", "users") == [
        "id", "name", "email", "updated_at"]
    assert registry.has_table("master", "users")
    assert not registry.has_table("master", "nope")
    with pytest.raises(InvalidIdentifier):
        registry.columns("master", "users; --")


def test_close(registry):
    registry.begin_transaction("slave")
    registry.close("slave")
    assert not registry.is_connected("slave")
    registry.close_all()
    assert registry.roles() == []

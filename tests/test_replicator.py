# -*- coding: utf-8 -*-

import threading

import pytest

from dbferry.exceptions import ConfigurationError, DatabaseError
from dbferry.replicator import Replicator, SyncResult
from dbferry.stats import MemoryStats
from dbferry.table_sync import TableSync

T1 = "2024-01-01 10:00:00"
T2 = "2024-01-02 10:00:00"


def add_user(registry, role, id, name, ts=T1):
    registry.execute(
        role, "INSERT INTO `users` (`id`, `name`, `updated_at`) "
              "VALUES (:id, :name, :ts)", {"id": id, "name": name, "ts": ts})


def add_tag(registry, role, id, label):
    registry.execute(role, "INSERT INTO `tags` (`id`, `label`) "
                           "VALUES (:id, :label)", {"id": id, "label": label})


def names(registry, role, table="users", col="name"):
    return {r["id"]: r[col] for r in registry.query(
        role, "SELECT * FROM `%s`" % table)}


def test_master_slave_sync(registry, config):
    add_user(registry, "master", 1, "A")
    add_user(registry, "master", 2, "B")
    add_tag(registry, "master", 1, "x")
    add_user(registry, "slave", 9, "orphan")

    replicator = Replicator(registry, config)
    result = replicator.sync()

    assert result.success, result.error
    assert isinstance(result.duration, float)
    assert names(registry, "slave") == {1: "A", 2: "B"}
    assert names(registry, "slave", "tags", "label") == {1: "x"}

    stats = result.stats
    assert stats["totalSyncs"] == 1
    assert stats["successfulSyncs"] == 1
    assert stats["inserts"] == 3
    assert stats["deletes"] == 1
    assert stats["tablesProcessed"]["users"]["inserted"] == 2
    assert stats["tablesProcessed"]["tags"]["rows"] == 1
    assert stats["lastError"] is None

    d = result.as_dict()
    assert d["success"] is True
    assert "error" not in d


def test_master_master_sync(registry, mm_config):
    add_user(registry, "master", 1, "from-master")
    add_user(registry, "slave", 2, "from-slave")
    add_tag(registry, "master", 1, "master-label")
    add_tag(registry, "slave", 1, "slave-label")

    replicator = Replicator(registry, mm_config)
    result = replicator.sync()
    assert result.success, result.error

    expected = {1: "from-master", 2: "from-slave"}
    assert names(registry, "master") == expected
    assert names(registry, "slave") == expected

    # master wins without timestamps
    assert names(registry, "master", "tags", "label") == {1: "master-label"}
    assert names(registry, "slave", "tags", "label") == {1: "master-label"}

    # a second cycle changes nothing
    again = replicator.sync()
    assert again.stats["inserts"] == 0
    assert again.stats["deletes"] == 0

    # deletion on master propagates to slave
    registry.execute("master", "DELETE FROM `users` WHERE `id` = 2")
    result = replicator.sync()
    assert result.success
    assert names(registry, "slave") == {1: "from-master"}
    assert names(registry, "master") == {1: "from-master"}


def test_master_master_slave_update_wins_by_timestamp(registry, mm_config):
    add_user(registry, "master", 1, "A", T1)
    replicator = Replicator(registry, mm_config)
    replicator.sync()

    registry.execute("slave", "UPDATE `users` SET `name` = 'edited', "
                              "`updated_at` = :ts WHERE `id` = 1", {"ts": T2})
    assert replicator.sync().success
    assert names(registry, "master") == {1: "edited"}


def test_sync_failure_result(registry, config):
    config["replication"]["tables"].append(
        {"name": "missing_table", "primaryKey": "id"})
    add_user(registry, "master", 1, "A")

    replicator = Replicator(registry, config)
    result = replicator.sync()
    assert not result.success
    assert result.error
    assert result.as_dict()["success"] is False

    stats = replicator.get_stats()
    assert stats["failedSyncs"] == 1
    assert stats["lastError"] == result.error
    # earlier tables stay committed
    assert names(registry, "slave") == {1: "A"}


def test_sync_rolls_back_failing_table(registry, config, mocker):
    add_user(registry, "master", 1, "A")
    add_user(registry, "slave", 5, "kept")

    original = TableSync._detect_deletions

    def broken(self, *args, **kwargs):
        original(self, *args, **kwargs)
        raise DatabaseError("boom")

    mocker.patch.object(TableSync, "_detect_deletions", broken)
    result = Replicator(registry, config).sync()
    assert not result.success
    assert result.error == "boom"
    assert names(registry, "slave") == {5: "kept"}
    assert not registry.in_transaction("slave")


def test_sync_unexpected_error_is_failed_result(registry, config, mocker):
    add_user(registry, "master", 1, "A")
    mocker.patch.object(TableSync, "run", side_effect=RuntimeError("bug"))

    replicator = Replicator(registry, config)
    result = replicator.sync()
    assert not result.success
    assert result.error == "bug"
    assert replicator.get_stats()["failedSyncs"] == 1
    assert not registry.in_transaction("slave")
    assert names(registry, "slave") == {}


def test_tracking_disabled(registry, config):
    config["replication"]["enableTracking"] = False
    add_user(registry, "master", 1, "A")
    add_user(registry, "slave", 9, "orphan")

    replicator = Replicator(registry, config)
    assert replicator.sync().success
    assert names(registry, "slave") == {1: "A", 9: "orphan"}
    assert not registry.has_table("slave", "_replication_metadata")
    assert replicator.get_table_metadata("users") == {
        "table": "users", "last_sync": None, "deleted": []}


def test_concurrent_sync_rejected(registry, config):
    replicator = Replicator(registry, config)
    entered, release = threading.Event(), threading.Event()

    def slow_sync():
        entered.set()
        release.wait(5)
        return SyncResult(True, 0.0)

    replicator._sync = slow_sync
    t = threading.Thread(target=replicator.sync)
    t.start()
    entered.wait(5)
    try:
        result = replicator.sync()
    finally:
        release.set()
        t.join()

    assert not result.success
    assert result.error == "sync already in progress"
    assert replicator.sync().success


def test_stats_injected(registry, config):
    stats = MemoryStats()
    replicator = Replicator(registry, config, stats=stats)
    replicator.sync()
    replicator.sync()
    assert stats.total_syncs == 2
    assert replicator.get_stats()["totalSyncs"] == 2


def test_push_pull_metadata(registry, config):
    replicator = Replicator(registry, config)

    result = replicator.push_data_to_local("users", [
        {"id": 1, "name": "A", "updated_at": T1},
        {"id": 2, "name": "B", "updated_at": T1},
    ])
    assert result == {"inserted": 2, "updated": 0, "skipped": 0, "rows": 2}

    result = replicator.push_data_to_local("users", [
        {"id": 1, "name": "A2", "updated_at": T2}])
    assert result["updated"] == 1

    rows = replicator.pull_data_from_local("users")
    assert {r["id"]: r["name"] for r in rows} == {1: "A2", 2: "B"}
    assert [r["id"] for r in replicator.pull_data_from_local(
        "users", "2024-01-01 12:00:00")] == [1]

    meta = replicator.get_table_metadata("users")
    assert meta["table"] == "users"
    assert meta["last_sync"] is not None
    assert meta["deleted"] == []


def test_unconfigured_table_rejected(registry, config):
    replicator = Replicator(registry, config)
    for call in (lambda: replicator.push_data_to_local("secrets", []),
                 lambda: replicator.pull_data_from_local("secrets"),
                 lambda: replicator.get_table_metadata("secrets")):
        with pytest.raises(ConfigurationError):
            call()


def test_metadata_lists_deleted(registry, config):
    add_user(registry, "master", 1, "A")
    add_user(registry, "slave", 2, "orphan")
    replicator = Replicator(registry, config)
    replicator.sync()

    # the master side reports what it knows, deletes happened on slave
    assert replicator.get_table_metadata("users")["deleted"] == []
    deleted = replicator.metadata.deleted_since("slave", "users")
    assert [pk for pk, _ in deleted] == ["2"]


def test_purge_metadata(registry, config):
    replicator = Replicator(registry, config)
    replicator.sync()
    assert replicator.purge_metadata() == {"master": 0, "slave": 0}

# -*- coding: utf-8 -*-

"""
    dbferry.replicator
    ~~~~~~~~~~~~~~~~~~

    The replication orchestrator, runs the table sync over every configured
    table according to the replication mode::

        registry = Registry()
        registry.connect("master", config["databases"]["master"])
        registry.connect("slave", config["databases"]["slave"])

        replicator = Replicator(registry, config)
        result = replicator.sync()
        if not result.success:
            print(result.error)

    ``sync`` never raises, a failed run is reported
    through the returned :class:`SyncResult`.
"""

import contextlib
import logging
import threading
import time

from .config import (
    Mode, Tracking, get_mode, get_retention_days, get_tables, get_tracking,
)
from .exceptions import ConfigurationError, ReplicationError, SyncInProgress
from .metadata import ReplicationMetadata
from .stats import MemoryStats
from .table_sync import Conflict, Deletion, TableSync
from .utils import format_ts

DATA_ROLES = ("master", "slave")


class SyncResult:
    def __init__(self, success, duration=None, stats=None, error=None):
        self.success = success
        self.duration = duration
        self.stats = stats or {}
        self.error = error

    def as_dict(self):
        d = {"success": self.success, "duration": self.duration,
             "stats": self.stats}
        if not self.success:
            d["error"] = self.error
        return d

    def __bool__(self):
        return self.success

    def __repr__(self):
        return "<SyncResult success=%s duration=%s error=%r>" % (
            self.success, self.duration, self.error)


class Replicator:
    """Replication orchestrator.

    :param registry: connection registry with ``master`` (and ``slave``)
     connected.
    :param config: the validated config dict.
    :param stats: stats accumulator, defaults to in memory counters.
    :param metadata: metadata store, defaults to one on the registry.
    """

    def __init__(self, registry, config, stats=None, metadata=None):
        self.registry = registry
        self.config = config
        self.logger = logging.getLogger("dbferry.replicator")

        self.mode = get_mode(config)
        self.tracking = get_tracking(config)
        self.retention_days = get_retention_days(config)
        self.tables = get_tables(config)

        self.stats = stats if stats is not None else MemoryStats()
        self.metadata = metadata if metadata is not None \
            else ReplicationMetadata(registry)

        self._lock = threading.Lock()

    @property
    def tracked(self):
        return self.tracking is Tracking.ENABLED

    def table_config(self, name):
        for table in self.tables:
            if table.name == name:
                return table
        raise ConfigurationError("Table %s is not configured for "
                                 "replication" % name)

    def table_sync(self, table):
        return TableSync(self.registry, self.metadata, table, self.tracking)

    def data_roles(self):
        return [r for r in DATA_ROLES if self.registry.is_connected(r)]

    @contextlib.contextmanager
    def _transaction(self, *roles):
        """All roles commit after the block, or all roll back."""
        opened = []
        try:
            for role in roles:
                self.registry.begin_transaction(role)
                opened.append(role)
            yield
            for role in roles:
                self.registry.commit(role)
        except Exception:
            for role in opened:
                if self.registry.in_transaction(role):
                    self.registry.rollback(role)
                    self.logger.info("rolled back %s" % role)
            raise

    def sync(self):
        """Run one sync cycle over all configured tables.

        :return: :class:`SyncResult`.
        """
        if not self._lock.acquire(blocking=False):
            error = SyncInProgress()
            self.logger.warning(str(error))
            return SyncResult(False, stats=self.get_stats(), error=str(error))
        try:
            return self._sync()
        finally:
            self._lock.release()

    def _sync(self):
        start = time.monotonic()
        run_id = self.stats.start(self.mode.value)

        try:
            if self.tracked:
                for role in self.data_roles():
                    self.metadata.ensure_schema(role)

            for table in self.tables:
                if self.mode is Mode.MASTER_SLAVE:
                    table_stats = self._sync_master_slave(table)
                else:
                    table_stats = self._sync_master_master(table)
                self.stats.record_table(run_id, table_stats)

        except Exception as e:
            duration = round(time.monotonic() - start, 2)
            if isinstance(e, ReplicationError):
                self.logger.error("Replication sync failed: %s" % e)
            else:
                self.logger.exception(e)
            self.stats.failure(run_id, str(e), duration)
            return SyncResult(False, duration, self.get_stats(), str(e))

        duration = round(time.monotonic() - start, 2)
        self.stats.success(run_id, duration)
        self.logger.info(
            "Replication sync completed successfully in %ss" % duration)
        return SyncResult(True, duration, self.get_stats())

    def _sync_master_slave(self, table):
        with self._transaction("slave"):
            return self.table_sync(table).run(
                "master", "slave", Conflict.OVERWRITE, Deletion.ALWAYS)

    def _sync_master_master(self, table):
        ts = self.table_sync(table)
        with self._transaction("master", "slave"):
            forward = ts.run(
                "master", "slave", Conflict.OVERWRITE, Deletion.KNOWN)
            backward = ts.run(
                "slave", "master", Conflict.MASTER_WINS, Deletion.KNOWN)
        return forward.merge(backward)

    def get_stats(self):
        return self.stats.summary()

    def push_data_to_local(self, table_name, rows):
        """Apply rows received from a remote environment to ``master``.

        :return: dict with ``inserted``, ``updated``, ``skipped`` and
         ``rows`` counts.
        """
        table = self.table_config(table_name)
        if self.tracked:
            self.metadata.ensure_schema("master")

        with self._transaction("master"):
            st = self.table_sync(table).apply_rows(
                "master", rows, Conflict.OVERWRITE)

        self.logger.info("applied %s pushed rows to %s: %s inserted, "
                         "%s updated" % (st.examined, table_name,
                                         st.inserted, st.updated))
        return {"inserted": st.inserted, "updated": st.updated,
                "skipped": st.skipped, "rows": st.rows}

    def pull_data_from_local(self, table_name, since=None):
        """Rows of ``master``, newer than since when given."""
        table = self.table_config(table_name)
        return self.table_sync(table).fetch_rows("master", since=since)

    def get_table_metadata(self, table_name):
        table = self.table_config(table_name)
        meta = {"table": table.name, "last_sync": None, "deleted": []}
        if not self.tracked or not self.metadata.exists("master"):
            return meta

        meta["last_sync"] = format_ts(
            self.metadata.last_sync_timestamp("master", table.name))
        meta["deleted"] = [
            {"primary_key_value": pk, "deleted_at": format_ts(deleted_at)}
            for pk, deleted_at in self.metadata.deleted_since(
                "master", table.name)]
        return meta

    def purge_metadata(self, days=None):
        """Retention sweep of the metadata on every data role.

        :return: ``{role: purged count}``.
        """
        days = days if days is not None else self.retention_days
        purged = {}
        for role in self.data_roles():
            if self.metadata.exists(role):
                purged[role] = self.metadata.purge_deleted_older_than(
                    role, days)
        return purged

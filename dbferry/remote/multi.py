# -*- coding: utf-8 -*-

"""
    dbferry.remote.multi
    ~~~~~~~~~~~~~~~~~~~~

    Sync of the local environment with remote dbferry instances over HTTP.

    The local ``master`` plays one side, the remote api the other::

        push:  local pull_data_from_local(since=remote last_sync)
                 --> POST /api/push on remote

        pull:  GET /api/pull on remote (since=local last_sync)
                 --> local push_data_to_local

    A failure on one environment never stops the others, and a failure on
    one table never stops the other tables of the same environment.
"""

import logging

from .client import ApiClient
from ..config import SyncMode
from ..exceptions import ConfigurationError, ReplicationError


class MultiEnvironmentSync:
    """
    :param replicator: the local :class:`dbferry.replicator.Replicator`.
    :param config: config dict holding ``remoteEnvironments``.
    :param clients: ``{env name: ApiClient}``, built from config if None.
    """

    def __init__(self, replicator, config, clients=None):
        self.replicator = replicator
        self.config = config
        self.logger = logging.getLogger("dbferry.remote.multi")

        self.environments = config.get("remoteEnvironments") or {}
        if clients is None:
            clients = {
                name: ApiClient(env["url"], env.get("apiKey"),
                                env.get("timeout", 30))
                for name, env in self.environments.items()}
        self.clients = clients

    def sync_mode(self, name):
        env = self.environments.get(name) or {}
        return SyncMode(env.get("syncMode", SyncMode.BIDIRECTIONAL.value))

    def client(self, name):
        try:
            return self.clients[name]
        except KeyError:
            raise ConfigurationError("Unknown remote environment %s" % name)

    def sync_all(self):
        """Sync with every remote environment.

        :return: ``{env name: {"success": bool, "result"|"error": ...}}``
        """
        results = {}
        for name in self.clients:
            self.logger.info("Syncing with remote environment: %s" % name)
            try:
                results[name] = {"success": True,
                                 "result": self.sync_remote(name)}
                self.logger.info("Successfully synced with %s" % name)
            except Exception as e:
                self.logger.exception(
                    "Failed to sync with %s: %s" % (name, e))
                results[name] = {"success": False, "error": str(e)}
        return results

    def sync_remote(self, name):
        """Push and/or pull every table with one remote environment."""
        client = self.client(name)
        mode = self.sync_mode(name)
        stats = {"pushed": {}, "pulled": {}}

        for table in self.replicator.tables:
            if mode.pushes:
                try:
                    stats["pushed"][table.name] = self.push_table(
                        client, table.name)
                except ReplicationError as e:
                    self.logger.error("Failed to push %s to %s: %s" % (
                        table.name, name, e))
                    stats["pushed"][table.name] = {"error": str(e)}

            if mode.pulls:
                try:
                    stats["pulled"][table.name] = self.pull_table(
                        client, table.name)
                except ReplicationError as e:
                    self.logger.error("Failed to pull %s from %s: %s" % (
                        table.name, name, e))
                    stats["pulled"][table.name] = {"error": str(e)}

        return stats

    def push_table(self, client, table):
        """Send local rows newer than the remote last sync."""
        try:
            meta = client.get_metadata(table)
            last_sync = (meta.get("metadata") or {}).get("last_sync")
        except ReplicationError as e:
            self.logger.warning(
                "remote metadata of %s unavailable, pushing all rows: %s" % (
                    table, e))
            last_sync = None

        rows = self.replicator.pull_data_from_local(table, last_sync)
        if not rows:
            return {"rows": 0, "message": "No new data to push"}

        resp = client.push_data(table, rows)
        result = resp.get("result") or {}
        return {"rows": len(rows),
                "inserted": result.get("inserted", 0),
                "updated": result.get("updated", 0)}

    def pull_table(self, client, table):
        """Fetch remote rows newer than the local last sync and apply them."""
        try:
            last_sync = self.replicator.get_table_metadata(table)["last_sync"]
        except ReplicationError as e:
            self.logger.warning(
                "local metadata of %s unavailable, pulling all rows: %s" % (
                    table, e))
            last_sync = None

        resp = client.pull_data(table, last_sync)
        rows = resp.get("data") or []
        if not rows:
            return {"rows": 0, "message": "No new data to pull"}

        result = self.replicator.push_data_to_local(table, rows)
        return {"rows": len(rows),
                "inserted": result["inserted"],
                "updated": result["updated"]}

    def remote_statuses(self):
        statuses = {}
        for name, client in self.clients.items():
            try:
                statuses[name] = client.get_status()
            except ReplicationError as e:
                statuses[name] = {"error": str(e), "reachable": False}
        return statuses

    def trigger_remote_syncs(self):
        results = {}
        for name, client in self.clients.items():
            try:
                results[name] = client.trigger_sync()
            except ReplicationError as e:
                results[name] = {"success": False, "error": str(e)}
        return results

# -*- coding: utf-8 -*-

import logging

from .base import Stats
from ..utils import format_ts, now


class MemoryStats(Stats):
    """Process lifetime counters, lost on restart.

    ``inserts``, ``updates``, ``deletes`` and ``tablesProcessed`` describe
    the last run only, the sync counters add up across runs.
    """

    def __init__(self):
        self.logger = logging.getLogger("dbferry.stats")

        self.last_sync = None
        self.total_syncs = 0
        self.successful_syncs = 0
        self.failed_syncs = 0
        self.last_error = None
        self.tables_processed = {}
        self.inserts = 0
        self.updates = 0
        self.deletes = 0

    def start(self, mode):
        self.last_sync = now()
        self.total_syncs += 1
        self.tables_processed = {}
        self.inserts = self.updates = self.deletes = 0

    def record_table(self, run_id, table_stats):
        self.tables_processed[table_stats.table] = table_stats.as_dict()
        self.inserts += table_stats.inserted
        self.updates += table_stats.updated
        self.deletes += table_stats.deleted

    def success(self, run_id, duration):
        self.successful_syncs += 1
        self.last_error = None

    def failure(self, run_id, error, duration=None):
        self.failed_syncs += 1
        self.last_error = error

    def summary(self):
        return {
            "lastSync": format_ts(self.last_sync),
            "totalSyncs": self.total_syncs,
            "successfulSyncs": self.successful_syncs,
            "failedSyncs": self.failed_syncs,
            "lastError": self.last_error,
            "tablesProcessed": dict(self.tables_processed),
            "inserts": self.inserts,
            "updates": self.updates,
            "deletes": self.deletes,
        }

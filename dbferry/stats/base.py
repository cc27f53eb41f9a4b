# -*- coding: utf-8 -*-


class Stats:
    """Stats accumulator base class, defines the essential APIs.

    A sync run goes through ``start``, one ``record_table`` per table, then
    exactly one of ``success`` or ``failure``.
    """
    persistent = False

    def start(self, mode):
        """Open a sync run, returns the run id (may be ``None``)."""
        raise NotImplementedError

    def record_table(self, run_id, table_stats):
        raise NotImplementedError

    def success(self, run_id, duration):
        raise NotImplementedError

    def failure(self, run_id, error, duration=None):
        raise NotImplementedError

    def summary(self):
        raise NotImplementedError

    def history(self, limit=10):
        return []

    def table_history(self, table, limit=10):
        return []

    def errors(self, limit=20):
        return []

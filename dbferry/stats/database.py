# -*- coding: utf-8 -*-

"""
    dbferry.stats.database
    ~~~~~~~~~~~~~~~~~~~~~~

    Stats persisted to a dedicated database (the ``stats`` role), kept
    apart from the replicated application databases.

    Every sink write goes through :func:`_strict_sink`: by default a failed
    write is logged and the sync carries on, with ``strict=True`` the
    :class:`dbferry.exceptions.DatabaseError` is raised to the caller.
"""

import functools

import sqlalchemy as sa

from .memory import MemoryStats
from ..exceptions import DatabaseError
from ..utils import now

schema = sa.MetaData()

sync_history = sa.Table(
    "sync_history", schema,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("sync_started_at", sa.DateTime, nullable=False),
    sa.Column("sync_completed_at", sa.DateTime, nullable=True),
    sa.Column("duration_seconds", sa.Numeric(10, 2, asdecimal=False),
              nullable=True),
    sa.Column("status", sa.String(16), nullable=False, default="running"),
    sa.Column("mode", sa.String(50), nullable=False),
    sa.Column("error_message", sa.Text, nullable=True),
    sa.Column("total_inserts", sa.Integer, default=0),
    sa.Column("total_updates", sa.Integer, default=0),
    sa.Column("total_deletes", sa.Integer, default=0),
    sa.Column("tables_processed", sa.Integer, default=0),
    sa.Index("idx_status", "status"),
    sa.Index("idx_started", "sync_started_at"),
    mysql_engine="InnoDB",
    mysql_charset="utf8mb4",
)

table_sync_stats = sa.Table(
    "table_sync_stats", schema,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("sync_id", sa.Integer,
              sa.ForeignKey("sync_history.id", ondelete="CASCADE"),
              nullable=False),
    sa.Column("table_name", sa.String(255), nullable=False),
    sa.Column("rows_processed", sa.Integer, default=0),
    sa.Column("inserts", sa.Integer, default=0),
    sa.Column("updates", sa.Integer, default=0),
    sa.Column("deletes", sa.Integer, default=0),
    sa.Column("sync_timestamp", sa.DateTime, nullable=False),
    sa.Index("idx_sync_id", "sync_id"),
    sa.Index("idx_table_name", "table_name"),
    mysql_engine="InnoDB",
    mysql_charset="utf8mb4",
)

operation_log = sa.Table(
    "operation_log", schema,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("sync_id", sa.Integer,
              sa.ForeignKey("sync_history.id", ondelete="CASCADE"),
              nullable=True),
    sa.Column("log_timestamp", sa.DateTime, nullable=False),
    sa.Column("level", sa.String(16), nullable=False, default="info"),
    sa.Column("message", sa.Text, nullable=False),
    sa.Column("context", sa.JSON, nullable=True),
    sa.Index("idx_log_sync_id", "sync_id"),
    sa.Index("idx_log_timestamp", "log_timestamp"),
    sa.Index("idx_level", "level"),
    mysql_engine="InnoDB",
    mysql_charset="utf8mb4",
)


def _strict_sink(func):
    """Strict deco for DatabaseStats writes.

    The deco will choose whether to silent the database error or not based
    on the strict attr of the DatabaseStats object.
    """
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except DatabaseError as e:
            if self.strict:
                raise
            self.logger.warning("stats sink error in %s: %s" % (
                func.__name__, e))
            return None
    return wrapper


def _int(value):
    return int(value) if value is not None else 0


class DatabaseStats(MemoryStats):
    """Stats accumulator backed by the stats database.

    In memory counters are kept as well, so ``summary`` still answers when
    the sink is down.

    :param registry: connection registry with the ``role`` connected.
    :param role: database role of the stats sink.
    :param strict: raise sink write errors instead of logging them.
    """
    persistent = True

    def __init__(self, registry, role="stats", strict=False):
        super().__init__()
        self.registry = registry
        self.role = role
        self.strict = strict

        self._mode = None
        self.ensure_schema()

    @_strict_sink
    def ensure_schema(self):
        self.registry.create_all(self.role, schema)
        self.logger.debug("stats schema ready on %s" % self.role)
        return True

    def start(self, mode):
        super().start(mode)
        self._mode = mode
        return self._insert_run(mode)

    @_strict_sink
    def _insert_run(self, mode):
        return self.registry.insert(self.role, sa.insert(sync_history).values(
            sync_started_at=now(), mode=mode, status="running"))

    @_strict_sink
    def record_table(self, run_id, table_stats):
        super().record_table(run_id, table_stats)
        if run_id is None:
            return
        self.registry.execute(self.role, sa.insert(table_sync_stats).values(
            sync_id=run_id,
            table_name=table_stats.table,
            rows_processed=table_stats.examined,
            inserts=table_stats.inserted,
            updates=table_stats.updated,
            deletes=table_stats.deleted,
            sync_timestamp=table_stats.timestamp or now()))

    def success(self, run_id, duration):
        super().success(run_id, duration)
        self._finish_run(run_id, "success", duration)

    def failure(self, run_id, error, duration=None):
        super().failure(run_id, error, duration)
        self._finish_run(run_id, "failed", duration, error)
        self.log(run_id, "error", error, {
            "mode": self._mode,
            "tables": list(self.tables_processed),
        })

    @_strict_sink
    def _finish_run(self, run_id, status, duration, error=None):
        if run_id is None:
            return
        stmt = sa.update(sync_history).where(
            sync_history.c.id == run_id).values(
                sync_completed_at=now(),
                duration_seconds=duration,
                status=status,
                error_message=error,
                total_inserts=self.inserts,
                total_updates=self.updates,
                total_deletes=self.deletes,
                tables_processed=len(self.tables_processed))
        self.registry.execute(self.role, stmt)

    @_strict_sink
    def log(self, run_id, level, message, context=None):
        """Append a line to the operation log."""
        self.registry.execute(self.role, sa.insert(operation_log).values(
            sync_id=run_id, log_timestamp=now(), level=level,
            message=message, context=context))

    @_strict_sink
    def aggregates(self):
        h = sync_history
        stmt = sa.select(
            sa.func.count().label("total_syncs"),
            sa.func.sum(sa.case((h.c.status == "success", 1), else_=0))
            .label("successful_syncs"),
            sa.func.sum(sa.case((h.c.status == "failed", 1), else_=0))
            .label("failed_syncs"),
            sa.func.max(h.c.sync_started_at).label("last_sync"),
            sa.func.sum(h.c.total_inserts).label("total_inserts"),
            sa.func.sum(h.c.total_updates).label("total_updates"),
            sa.func.sum(h.c.total_deletes).label("total_deletes"),
            sa.func.avg(h.c.duration_seconds).label("avg_duration"),
        )
        row = self.registry.query(self.role, stmt)[0]
        for k in ("total_syncs", "successful_syncs", "failed_syncs",
                  "total_inserts", "total_updates", "total_deletes"):
            row[k] = _int(row[k])
        if row["avg_duration"] is not None:
            row["avg_duration"] = round(float(row["avg_duration"]), 2)
        return row

    def summary(self):
        d = super().summary()
        d.update(self.aggregates() or {})
        return d

    def history(self, limit=10):
        stmt = sa.select(sync_history).order_by(
            sync_history.c.sync_started_at.desc(),
            sync_history.c.id.desc()).limit(limit)
        return self.registry.query(self.role, stmt)

    def table_history(self, table, limit=10):
        t, h = table_sync_stats, sync_history
        stmt = sa.select(t, h.c.sync_started_at, h.c.status).select_from(
            t.join(h, t.c.sync_id == h.c.id)).where(
                t.c.table_name == table).order_by(
                    t.c.sync_timestamp.desc(), t.c.id.desc()).limit(limit)
        return self.registry.query(self.role, stmt)

    def errors(self, limit=20):
        o, h = operation_log, sync_history
        stmt = sa.select(o, h.c.sync_started_at, h.c.mode).select_from(
            o.outerjoin(h, o.c.sync_id == h.c.id)).where(
                o.c.level == "error").order_by(
                    o.c.log_timestamp.desc(), o.c.id.desc()).limit(limit)
        return self.registry.query(self.role, stmt)

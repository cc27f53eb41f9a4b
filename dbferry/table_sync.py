# -*- coding: utf-8 -*-

"""
    dbferry.table_sync
    ~~~~~~~~~~~~~~~~~~

    Full table diff and apply, for one table in one direction.

    The sync pass flow::

        +----------------+     +---------------+     +---------------------+
        |                |     |               |     |                     |
        |     source     +----->  column       +----->  batched pk lookup  |
        |   full scan    |     |  resolution   |     |     on target       |
        |                |     |               |     |                     |
        +----------------+     +---------------+     +----------+----------+
                                                                |
                      +-----------------------------------------+
                      |
           +----------v----------+     +---------------------+
           |                     |     |                     |
           |  insert / update /  +----->  delete target rows |
           |  skip per row       |     |  absent from source |
           |                     |     |                     |
           +---------------------+     +---------------------+

    When a timestamp column exists, a present row is only rewritten when
    the source is strictly newer, so equal timestamps are no-ops. Without
    a timestamp every present row is rewritten, unless the pass runs
    under ``Conflict.MASTER_WINS``, where present rows are never touched.
"""

import enum
import logging

import sqlalchemy as sa

from .config import Tracking
from .exceptions import ConfigurationError, ReplicationError
from .signals import publish
from .utils import cast_pk, format_ts, now, quote, validate_identifier

# max primary keys per ``IN (...)`` lookup
LOOKUP_CHUNK = 500


class Conflict(enum.Enum):
    """What to do with a row present on both sides when no timestamp tells
    which one is newer.
    """
    OVERWRITE = "overwrite"
    MASTER_WINS = "master-wins"


class Deletion(enum.Enum):
    """Which target rows absent from source get deleted.

    ``KNOWN`` only deletes rows the target metadata recorded as replicated,
    rows created on the target side are kept for the reverse pass.

    One way replication runs with ``ALWAYS``. Both passes of master-master
    run with ``KNOWN``, an ``ALWAYS`` master to slave pass would delete
    every row written on the slave before the slave to master pass could
    copy it over.
    """
    ALWAYS = "always"
    KNOWN = "known"
    NEVER = "never"


class TableStats:
    FIELDS = ("examined", "inserted", "updated", "skipped", "deleted")

    def __init__(self, table):
        self.table = table
        self.examined = 0
        self.inserted = 0
        self.updated = 0
        self.skipped = 0
        self.deleted = 0
        self.timestamp = None

    @property
    def rows(self):
        return self.inserted + self.updated

    def merge(self, other):
        for f in self.FIELDS:
            setattr(self, f, getattr(self, f) + getattr(other, f))
        self.timestamp = max(filter(None, (self.timestamp, other.timestamp)),
                             default=None)
        return self

    def as_dict(self):
        d = {f: getattr(self, f) for f in self.FIELDS}
        d["rows"] = self.rows
        d["timestamp"] = format_ts(self.timestamp)
        return d

    def __repr__(self):
        return "<TableStats %s i=%s u=%s d=%s>" % (
            self.table, self.inserted, self.updated, self.deleted)


def _newer(source_ts, target_ts):
    if type(source_ts) is type(target_ts):
        try:
            return source_ts > target_ts
        except TypeError:
            pass
    return format_ts(source_ts) > format_ts(target_ts)


class TableSync:
    """Table sync algorithm.

    :param registry: connection registry.
    :param metadata: :class:`dbferry.metadata.ReplicationMetadata`.
    :param table: :class:`dbferry.config.TableConfig` of the table.
    :param tracking: metadata tracking switch, without tracking the
     timestamp column is ignored and deletions are never detected.
    """

    def __init__(self, registry, metadata, table, tracking=Tracking.ENABLED):
        self.registry = registry
        self.metadata = metadata
        self.table = table
        self.tracking = tracking
        self.logger = logging.getLogger("dbferry.table_sync")

        validate_identifier(table.name)
        validate_identifier(table.primary_key)

    @property
    def tracked(self):
        return self.tracking is Tracking.ENABLED

    def resolve_columns(self, role):
        """Columns of the table on role minus ignored ones, all validated.
        """
        columns = [c for c in self.registry.columns(role, self.table.name)
                   if c not in self.table.ignore_columns]
        for c in columns:
            validate_identifier(c)
        if self.table.primary_key not in columns:
            raise ConfigurationError(
                "primary key %s not found in %s columns on %s" % (
                    self.table.primary_key, self.table.name, role))
        return columns

    def uses_timestamp(self, columns):
        return self.tracked and self.table.timestamp_column in columns

    def fetch_rows(self, role, since=None, columns=None):
        """Fetch the whole table from role.

        :param since: only rows whose timestamp column is strictly greater,
         ignored when the table has no timestamp column.
        """
        columns = columns or self.resolve_columns(role)
        sql = "SELECT %s FROM %s" % (
            ", ".join(quote(c) for c in columns), quote(self.table.name))
        params = {}
        if since is not None and self.table.timestamp_column in columns:
            sql += " WHERE %s > :since" % quote(self.table.timestamp_column)
            params["since"] = format_ts(since)
        return self.registry.query(role, sql, params)

    def _select_keys(self, with_ts, where):
        pk = self.table.primary_key
        cols = [quote(pk)]
        if with_ts:
            cols.append(quote(self.table.timestamp_column))
        return "SELECT %s FROM %s WHERE %s" % (
            ", ".join(cols), quote(self.table.name), where)

    def _lookup(self, target, keys, with_ts):
        """Existing target rows for keys as ``{str(pk): timestamp}``, keyed
        by the primary key values the target returned.
        """
        pk = self.table.primary_key
        stmt = sa.text(self._select_keys(with_ts, "%s IN :keys" % quote(pk))) \
            .bindparams(sa.bindparam("keys", expanding=True))

        found = {}
        for i in range(0, len(keys), LOOKUP_CHUNK):
            chunk = keys[i:i + LOOKUP_CHUNK]
            for r in self.registry.query(target, stmt, {"keys": chunk}):
                found[cast_pk(r[pk])] = (
                    r[self.table.timestamp_column] if with_ts else None)
        return found

    def _find(self, target, key, with_ts):
        """Single key lookup with the target's own key equality.

        The batched lookup is matched back by exact value, which misses
        rows the target collation considers equal (case or trailing space
        on a MySQL ``_ci`` column).

        :return: ``(str(pk), timestamp)`` of the target row or ``None``.
        """
        pk = self.table.primary_key
        rows = self.registry.query(
            target, self._select_keys(with_ts, "%s = :key" % quote(pk)),
            {"key": key})
        if not rows:
            return None
        r = rows[0]
        return (cast_pk(r[pk]),
                r[self.table.timestamp_column] if with_ts else None)

    def _insert(self, target, row):
        cols = list(row)
        sql = "INSERT INTO %s (%s) VALUES (%s)" % (
            quote(self.table.name),
            ", ".join(quote(c) for c in cols),
            ", ".join(":p%d" % i for i in range(len(cols))))
        self.registry.execute(
            target, sql, {"p%d" % i: row[c] for i, c in enumerate(cols)})

    def _update(self, target, row):
        cols = list(row)
        sql = "UPDATE %s SET %s WHERE %s = :key" % (
            quote(self.table.name),
            ", ".join("%s = :p%d" % (quote(c), i) for i, c in enumerate(cols)),
            quote(self.table.primary_key))
        params = {"p%d" % i: row[c] for i, c in enumerate(cols)}
        params["key"] = row[self.table.primary_key]
        self.registry.execute(target, sql, params)

    def _should_update(self, use_ts, conflict, source_ts, target_ts):
        if use_ts:
            # ties keep the target row
            return (target_ts is None or source_ts is None or
                    _newer(source_ts, target_ts))
        return conflict is Conflict.OVERWRITE

    def _reconcile(self, target, rows, use_ts, conflict, stats):
        """Insert, update or skip every row on target.

        :return: set of the target primary keys the rows landed on.
        """
        name, pk = self.table.name, self.table.primary_key
        ts_col = self.table.timestamp_column

        existing = self._lookup(target, [r[pk] for r in rows], use_ts) \
            if rows else {}
        seen = set()

        for row in rows:
            stats.examined += 1
            key = cast_pk(row[pk])

            if key not in existing:
                match = self._find(target, row[pk], use_ts)
                if match is not None:
                    key = match[0]
                    existing[key] = match[1]

            if key not in existing:
                self._insert(target, row)
                stats.inserted += 1
                existing[key] = row.get(ts_col)
                publish(name, "write", row[pk], row)
                self.logger.debug("%s_write -> %s on %s" % (
                    name, row[pk], target))

            elif self._should_update(use_ts, conflict,
                                     row.get(ts_col), existing[key]):
                self._update(target, row)
                stats.updated += 1
                publish(name, "update", row[pk], row)
                self.logger.debug("%s_update -> %s on %s" % (
                    name, row[pk], target))

                # the update rewrites the key column with the source value
                del existing[key]
                key = cast_pk(row[pk])
                existing[key] = row.get(ts_col)

            else:
                stats.skipped += 1

            seen.add(key)
            if self.tracked:
                self.metadata.record_synced(target, name, key)
        return seen

    def _detect_deletions(self, target, seen, deletion, stats):
        name, pk = self.table.name, self.table.primary_key

        known = None
        if deletion is Deletion.KNOWN:
            known = self.metadata.live_keys(target, name)

        rows = self.registry.query(target, "SELECT %s FROM %s" % (
            quote(pk), quote(name)))
        for r in rows:
            key = cast_pk(r[pk])
            if key in seen:
                continue
            if known is not None and key not in known:
                self.logger.debug(
                    "%s -> %s kept on %s, never replicated" % (
                        name, r[pk], target))
                continue

            self.registry.execute(
                target, "DELETE FROM %s WHERE %s = :key" % (
                    quote(name), quote(pk)), {"key": r[pk]})
            self.metadata.mark_deleted(target, name, r[pk])
            stats.deleted += 1
            publish(name, "delete", r[pk], {pk: r[pk]})
            self.logger.debug("%s_delete -> %s on %s" % (name, r[pk], target))

    def run(self, source, target, conflict=Conflict.OVERWRITE,
            deletion=Deletion.ALWAYS):
        """Sync the table from source role to target role.

        :param conflict: policy for present rows without a usable timestamp.
        :param deletion: which target rows absent from source get deleted.
        :return: :class:`TableStats` of the pass.
        """
        name = self.table.name
        self.logger.info("syncing table %s: %s -> %s" % (
            name, source, target))

        columns = self.resolve_columns(source)
        rows = self.fetch_rows(source, columns=columns)

        stats = TableStats(name)
        seen = self._reconcile(target, rows, self.uses_timestamp(columns),
                               conflict, stats)

        if self.tracked and deletion is not Deletion.NEVER:
            self._detect_deletions(target, seen, deletion, stats)

        stats.timestamp = now()
        self.logger.info(
            "synced table %s (%s -> %s): %s inserted, %s updated, "
            "%s deleted, %s skipped" % (
                name, source, target, stats.inserted, stats.updated,
                stats.deleted, stats.skipped))
        return stats

    def apply_rows(self, target, rows, conflict=Conflict.OVERWRITE):
        """Insert or update externally supplied rows into target.

        There is no deletion detection, keys of the rows are validated and
        the ones unknown to the target table are dropped.
        """
        columns = self.resolve_columns(target)
        pk = self.table.primary_key

        cleaned = []
        for row in rows:
            for k in row:
                validate_identifier(k)
            if row.get(pk) is None:
                raise ReplicationError(
                    "row without primary key %s for table %s" % (
                        pk, self.table.name))
            cleaned.append({c: row[c] for c in columns if c in row})

        stats = TableStats(self.table.name)
        self._reconcile(target, cleaned, self.uses_timestamp(columns),
                        conflict, stats)
        stats.timestamp = now()
        return stats

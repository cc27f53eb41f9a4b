# -*- coding: utf-8 -*-

"""
    dbferry.metadata
    ~~~~~~~~~~~~~~~~

    Per database bookkeeping of replicated rows.

    Every database role in play gets a ``_replication_metadata`` side table
    holding one record per ``(table_name, primary_key_value)``::

        +------------+-------------------+---------------------+------------+
        | table_name | primary_key_value | last_sync_timestamp | is_deleted |
        +------------+-------------------+---------------------+------------+
        | users      | 1                 | 2024-05-01 10:00:00 | 0          |
        | users      | 2                 | 2024-05-01 10:05:00 | 1          |
        +------------+-------------------+---------------------+------------+

    Records are upserted on every observation and only hard deleted by the
    age based retention sweep. Primary key values are always stored in their
    string form, which keeps equality lookups exact but loses native
    ordering for numeric keys.
"""

import datetime
import logging

import sqlalchemy as sa
from sqlalchemy.dialects import mysql, postgresql, sqlite

from .exceptions import DatabaseError
from .utils import cast_pk, now, parse_ts

METADATA_TABLE = "_replication_metadata"

schema = sa.MetaData()

replication_metadata = sa.Table(
    METADATA_TABLE, schema,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("table_name", sa.String(255), nullable=False),
    sa.Column("primary_key_value", sa.String(255), nullable=False),
    sa.Column("last_sync_timestamp", sa.DateTime, nullable=True),
    sa.Column("is_deleted", sa.Boolean, nullable=False, default=False),
    sa.Column("deleted_at", sa.DateTime, nullable=True),
    sa.UniqueConstraint("table_name", "primary_key_value",
                        name="uk_table_pk"),
    sa.Index("idx_deleted", "is_deleted", "deleted_at"),
    mysql_engine="InnoDB",
    mysql_charset="utf8mb4",
)

_insert_dialects = {
    "mysql": mysql.insert,
    "mariadb": mysql.insert,
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class ReplicationMetadata:
    """Metadata store, every operation is scoped to a database role.

    :param registry: the :class:`dbferry.db.Registry` owning connections.
    """

    def __init__(self, registry):
        self.registry = registry
        self.table = replication_metadata
        self.logger = logging.getLogger("dbferry.metadata")

    def ensure_schema(self, role):
        """Create the metadata table of role if it doesn't exist yet."""
        self.registry.create_all(role, schema)
        self.logger.debug("metadata schema ready on %s" % role)

    def exists(self, role):
        return self.registry.has_table(role, METADATA_TABLE)

    def _upsert(self, role, values, update):
        dialect = self.registry.dialect(role)
        try:
            insert = _insert_dialects[dialect]
        except KeyError:
            raise DatabaseError(
                "metadata upsert not supported on %s" % dialect)

        stmt = insert(self.table).values(**values)
        if dialect in ("mysql", "mariadb"):
            stmt = stmt.on_duplicate_key_update(**update)
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=["table_name", "primary_key_value"],
                set_=update)
        return self.registry.execute(role, stmt)

    def record_synced(self, role, table, pk):
        """Record that the row ``pk`` of ``table`` was synced just now."""
        ts = now()
        self._upsert(
            role,
            dict(table_name=table, primary_key_value=cast_pk(pk),
                 last_sync_timestamp=ts, is_deleted=False, deleted_at=None),
            dict(last_sync_timestamp=ts, is_deleted=False, deleted_at=None))

    def mark_deleted(self, role, table, pk):
        """Flag the row ``pk`` of ``table`` as deleted just now."""
        ts = now()
        self._upsert(
            role,
            dict(table_name=table, primary_key_value=cast_pk(pk),
                 last_sync_timestamp=ts, is_deleted=True, deleted_at=ts),
            dict(last_sync_timestamp=ts, is_deleted=True, deleted_at=ts))

    def last_sync_timestamp(self, role, table):
        """Latest sync time recorded for table, ``None`` if never synced."""
        t = self.table
        stmt = sa.select(sa.func.max(t.c.last_sync_timestamp).label(
            "last_sync")).where(t.c.table_name == table)
        rows = self.registry.query(role, stmt)
        return rows[0]["last_sync"] if rows else None

    def deleted_since(self, role, table, since=None):
        """Rows of table flagged deleted after since, oldest first.

        :return: list of ``(primary_key_value, deleted_at)`` tuples.
        """
        t = self.table
        stmt = sa.select(t.c.primary_key_value, t.c.deleted_at).where(
            t.c.table_name == table, t.c.is_deleted.is_(True))
        if since is not None:
            stmt = stmt.where(t.c.deleted_at > parse_ts(since))
        stmt = stmt.order_by(t.c.deleted_at.asc(), t.c.id.asc())
        return [(r["primary_key_value"], r["deleted_at"])
                for r in self.registry.query(role, stmt)]

    def live_keys(self, role, table):
        """Primary keys recorded as synced and not deleted."""
        t = self.table
        stmt = sa.select(t.c.primary_key_value).where(
            t.c.table_name == table, t.c.is_deleted.is_(False))
        return {r["primary_key_value"]
                for r in self.registry.query(role, stmt)}

    def purge_deleted_older_than(self, role, days=30):
        """Hard delete records flagged deleted more than ``days`` ago.

        :return: the number of records removed.
        """
        t = self.table
        cutoff = now() - datetime.timedelta(days=days)
        stmt = sa.delete(t).where(t.c.is_deleted.is_(True),
                                  t.c.deleted_at < cutoff)
        count = self.registry.execute(role, stmt)
        self.logger.info("purged %s deleted metadata records on %s" % (
            count, role))
        return count

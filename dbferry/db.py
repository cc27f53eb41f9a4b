# -*- coding: utf-8 -*-

"""
    dbferry.db
    ~~~~~~~~~~

    Connection registry, one live sqlalchemy connection per database role
    (``master``, ``slave``, ``stats``...).

    Statements executed outside of an explicit transaction are committed
    right away::

        registry = Registry()
        registry.connect("master", "mysql+pymysql://root@localhost/app")
        registry.query("master", "SELECT * FROM users WHERE id = :id",
                       {"id": 1})

    Inside ``begin_transaction`` nothing is committed until ``commit``::

        registry.begin_transaction("slave")
        try:
            registry.execute("slave", "DELETE FROM users WHERE id = :id",
                             {"id": 1})
            registry.commit("slave")
        except DatabaseError:
            registry.rollback("slave")
            raise
"""

import contextlib
import logging

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from .config import database_url
from .exceptions import DatabaseError, NotConnected
from .utils import validate_identifier


class Registry:
    """Owner of every database handle, injected into the other components.
    """

    def __init__(self, name="dbferry.db"):
        self.logger = logging.getLogger(name)

        self._engines = {}
        self._conns = {}
        self._txs = {}

    def connect(self, role, settings, **kwargs):
        """Open the connection of a role, replacing any existing one.

        :param role: role name, eg. ``master``.
        :param settings: database settings dict or a sqlalchemy dsn.
        :param kwargs: more kwargs to be passed to ``create_engine``.
        """
        if role in self._conns:
            self.close(role)

        url = database_url(settings)
        try:
            engine = sa.create_engine(url, **kwargs)
            conn = engine.connect()
        except SQLAlchemyError as e:
            self.logger.error(
                "Error connecting to %s database: %s" % (role, e))
            raise DatabaseError(str(e), orig=e) from e

        self._engines[role] = engine
        self._conns[role] = conn
        self.logger.info("connected to %s database: %s" % (
            role, engine.url.render_as_string(hide_password=True)))
        return conn

    def connection(self, role):
        try:
            return self._conns[role]
        except KeyError:
            raise NotConnected(role)

    def roles(self):
        return list(self._conns)

    def is_connected(self, role):
        return role in self._conns

    def dialect(self, role):
        return self.connection(role).dialect.name

    @contextlib.contextmanager
    def _statement(self, role):
        conn = self.connection(role)
        explicit = role in self._txs
        try:
            yield conn
        except SQLAlchemyError as e:
            self.logger.error("Statement error on %s: %s" % (role, e))
            if not explicit:
                conn.rollback()
            raise DatabaseError(str(e), orig=e) from e
        else:
            if not explicit:
                conn.commit()

    @staticmethod
    def _text(sql):
        if isinstance(sql, str):
            return sa.text(sql)
        return sql

    def query(self, role, sql, params=None):
        """Run a query and return all rows as dicts.

        :param role: database role.
        :param sql: sql string with ``:name`` binds, or any sqlalchemy
         executable.
        :param params: bound values.
        """
        with self._statement(role) as conn:
            result = conn.execute(self._text(sql), params or {})
            return [dict(row) for row in result.mappings()]

    def execute(self, role, sql, params=None):
        """Run a statement and return the affected row count."""
        with self._statement(role) as conn:
            result = conn.execute(self._text(sql), params or {})
            return result.rowcount

    def insert(self, role, stmt, params=None):
        """Run an insert and return the new row primary key."""
        with self._statement(role) as conn:
            result = conn.execute(self._text(stmt), params or {})
            return result.inserted_primary_key[0]

    def columns(self, role, table):
        """Column names of table, in table order."""
        validate_identifier(table)
        with self._statement(role) as conn:
            return [c["name"] for c in sa.inspect(conn).get_columns(table)]

    def has_table(self, role, table):
        with self._statement(role) as conn:
            return sa.inspect(conn).has_table(table)

    def create_all(self, role, metadata):
        """Create the tables of a sqlalchemy ``MetaData`` if absent."""
        with self._statement(role) as conn:
            metadata.create_all(conn, checkfirst=True)

    def begin_transaction(self, role):
        conn = self.connection(role)
        if role in self._txs:
            raise DatabaseError("transaction already active on %s" % role)
        try:
            self._txs[role] = conn.begin()
        except SQLAlchemyError as e:
            raise DatabaseError(str(e), orig=e) from e
        self.logger.debug("transaction started on %s" % role)

    def _end(self, role, action):
        self.connection(role)
        tx = self._txs.pop(role, None)
        if tx is None:
            raise DatabaseError("no active transaction on %s" % role)
        try:
            getattr(tx, action)()
        except SQLAlchemyError as e:
            raise DatabaseError(str(e), orig=e) from e
        self.logger.debug("transaction %s on %s" % (action, role))

    def commit(self, role):
        self._end(role, "commit")

    def rollback(self, role):
        self._end(role, "rollback")

    def in_transaction(self, role):
        self.connection(role)
        return role in self._txs

    def close(self, role):
        tx = self._txs.pop(role, None)
        conn = self._conns.pop(role, None)
        engine = self._engines.pop(role, None)
        try:
            if tx is not None and tx.is_active:
                tx.rollback()
            if conn is not None:
                conn.close()
        finally:
            if engine is not None:
                engine.dispose()
        self.logger.info("closed %s database connection" % role)

    def close_all(self):
        for role in list(self._conns):
            self.close(role)

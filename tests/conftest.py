# -*- coding: utf-8 -*-

import logging
logging.basicConfig(level=logging.DEBUG)

import copy
import json
import os

import pytest
import sqlalchemy as sa

from dbferry.db import Registry
from dbferry.metadata import schema as metadata_schema
from dbferry.stats.database import schema as stats_schema

app_schema = sa.MetaData()

sa.Table(
    "users", app_schema,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
    sa.Column("name", sa.String(64)),
    sa.Column("email", sa.String(128), nullable=True),
    sa.Column("updated_at", sa.DateTime, nullable=True),
)

sa.Table(
    "tags", app_schema,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
    sa.Column("label", sa.String(64)),
)


@pytest.fixture(scope="session")
def conf():
    """Try load local conf.json
    """
    fname = os.path.join(os.path.dirname(__file__), "conf.json")
    if os.path.exists(fname):
        with open(fname) as f:
            return json.load(f)


def _dsn(conf, key, tmp_path):
    if conf and conf.get(key):
        return conf[key]
    return "sqlite:///%s" % (tmp_path / ("%s.db" % key.split("_")[0]))


def _reset(dsn, *schemas):
    """Drop everything dbferry knows about then create the given schemas.
    """
    engine = sa.create_engine(dsn)
    with engine.begin() as conn:
        for md in (stats_schema, metadata_schema, app_schema):
            md.drop_all(conn, checkfirst=True)
        for md in schemas:
            md.create_all(conn)
    engine.dispose()


@pytest.fixture
def master_dsn(conf, tmp_path):
    dsn = _dsn(conf, "master_dsn", tmp_path)
    _reset(dsn, app_schema)
    return dsn


@pytest.fixture
def slave_dsn(conf, tmp_path):
    dsn = _dsn(conf, "slave_dsn", tmp_path)
    _reset(dsn, app_schema)
    return dsn


@pytest.fixture
def stats_dsn(conf, tmp_path):
    dsn = _dsn(conf, "stats_dsn", tmp_path)
    _reset(dsn)
    return dsn


@pytest.fixture
def registry(master_dsn, slave_dsn):
    """Registry with clean master and slave holding users and tags tables.
    """
    r = Registry()
    r.connect("master", master_dsn)
    r.connect("slave", slave_dsn)
    yield r
    r.close_all()


@pytest.fixture
def stats_registry(registry, stats_dsn):
    registry.connect("stats", stats_dsn)
    return registry


@pytest.fixture
def config(master_dsn, slave_dsn):
    return {
        "mode": "master-slave",
        "databases": {
            "master": {"dsn": master_dsn},
            "slave": {"dsn": slave_dsn},
        },
        "replication": {
            "tables": [
                {"name": "users", "primaryKey": "id",
                 "timestampColumn": "updated_at"},
                {"name": "tags", "primaryKey": "id"},
            ],
        },
        "api": {"keys": ["secret-key"]},
    }


@pytest.fixture
def mm_config(config):
    c = copy.deepcopy(config)
    c["mode"] = "master-master"
    return c

# -*- coding: utf-8 -*-

"""
    dbferry.apps
    ~~~~~~~~~~~~

    Command line entry points, meant to be run from cron or a process
    manager::

        */5 * * * * dbferry-sync -c /etc/dbferry/config.json
"""

import logging

import click

from ..config import load_config
from ..db import Registry
from ..exceptions import DatabaseError
from ..logutils import setup_logger
from ..replicator import Replicator
from ..stats import stats_from_config
from ..utils import format_ts, now

logger = logging.getLogger("dbferry.apps")


def echo(message):
    click.echo("[%s] %s" % (format_ts(now()), message))


def bootstrap(config_path=None, debug=False, sql=False):
    """Load config, connect every configured role and build the replicator.

    A stats database which can't be reached falls back to in memory stats,
    any other setup error is raised.
    """
    setup_logger("DEBUG" if debug else "INFO", sql=sql)
    config = load_config(config_path)
    databases = config["databases"]

    registry = Registry()
    registry.connect("master", databases["master"])
    if databases.get("slave"):
        registry.connect("slave", databases["slave"])
    if databases.get("stats"):
        try:
            registry.connect("stats", databases["stats"])
        except DatabaseError as e:
            logger.warning("stats database unavailable, stats kept in "
                           "memory only: %s" % e)

    return Replicator(registry, config,
                      stats=stats_from_config(registry, config))

# -*- coding: utf-8 -*-

"""
    dbferry.apps.msync
    ~~~~~~~~~~~~~~~~~~

    One replication sync between the local master and slave.

    A failed sync is reported on stdout and still exits 0, only setup
    errors (config, connections) exit 1.
"""

import sys

import click

from . import bootstrap, echo
from ..exceptions import ReplicationError


@click.command()
@click.option("-c", "--config", "config_path", help="config file path")
@click.option("-d", "--debug", is_flag=True)
@click.option("--sql", is_flag=True, help="log every sql statement")
def main(config_path=None, debug=False, sql=False):
    echo("Starting replication sync...")
    try:
        replicator = bootstrap(config_path, debug, sql)
    except ReplicationError as e:
        echo("Error: %s" % e)
        sys.exit(1)

    try:
        result = replicator.sync()
    finally:
        replicator.registry.close_all()

    if result.success:
        echo("Sync completed successfully in %ss" % result.duration)
    else:
        echo("Sync failed: %s" % result.error)

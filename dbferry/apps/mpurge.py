# -*- coding: utf-8 -*-

"""
    dbferry.apps.mpurge
    ~~~~~~~~~~~~~~~~~~~

    Retention sweep of deleted metadata records.
"""

import sys

import click

from . import bootstrap, echo
from ..exceptions import ReplicationError


@click.command()
@click.option("-c", "--config", "config_path", help="config file path")
@click.option("-d", "--debug", is_flag=True)
@click.option("--sql", is_flag=True, help="log every sql statement")
@click.option("--days", type=int, default=None,
              help="retention in days, defaults to metadataRetentionDays")
def main(config_path=None, debug=False, sql=False, days=None):
    try:
        replicator = bootstrap(config_path, debug, sql)
    except ReplicationError as e:
        echo("Error: %s" % e)
        sys.exit(1)

    try:
        purged = replicator.purge_metadata(days)
    except ReplicationError as e:
        echo("Purge failed: %s" % e)
        sys.exit(1)
    finally:
        replicator.registry.close_all()

    if not purged:
        echo("No metadata to purge")
    for role, count in purged.items():
        echo("Purged %s deleted metadata records on %s" % (count, role))

# -*- coding: utf-8 -*-

"""
    dbferry.apps.mmulti
    ~~~~~~~~~~~~~~~~~~~

    Local sync followed by a push/pull sync with every remote environment.
"""

import sys

import click

from . import bootstrap, echo
from ..exceptions import ReplicationError
from ..remote import MultiEnvironmentSync


def _print_tables(action, tables):
    for table, stats in tables.items():
        if "error" in stats:
            click.echo("  %s %s: ERROR - %s" % (action, table, stats["error"]))
        else:
            click.echo("  %s %s: %s rows (I:%s, U:%s)" % (
                action, table, stats["rows"], stats.get("inserted", 0),
                stats.get("updated", 0)))


@click.command()
@click.option("-c", "--config", "config_path", help="config file path")
@click.option("-d", "--debug", is_flag=True)
@click.option("--sql", is_flag=True, help="log every sql statement")
def main(config_path=None, debug=False, sql=False):
    echo("Starting multi-environment sync...")
    try:
        replicator = bootstrap(config_path, debug, sql)
    except ReplicationError as e:
        echo("Error: %s" % e)
        sys.exit(1)

    try:
        if not replicator.config.get("remoteEnvironments"):
            echo("No remote environments configured. Exiting.")
            return

        multi = MultiEnvironmentSync(replicator, replicator.config)

        echo("Syncing local databases...")
        local = replicator.sync()
        if local.success:
            echo("Local sync completed in %ss" % local.duration)
        else:
            echo("Local sync failed: %s" % local.error)
            echo("Continuing with remote sync...")

        echo("Syncing with remote environments...")
        for name, result in multi.sync_all().items():
            if not result["success"]:
                echo("Failed to sync with %s: %s" % (name, result["error"]))
                continue
            echo("Successfully synced with %s" % name)
            _print_tables("Push", result["result"]["pushed"])
            _print_tables("Pull", result["result"]["pulled"])
    finally:
        replicator.registry.close_all()

    echo("Multi-environment sync completed")

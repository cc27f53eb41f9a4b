# -*- coding: utf-8 -*-

"""
    dbferry.apps.mserve
    ~~~~~~~~~~~~~~~~~~~

    Serve the HTTP api with the flask development server.
"""

import sys

import click

from . import bootstrap, echo
from ..api import create_app
from ..config import DEFAULT_PORT
from ..exceptions import ReplicationError


@click.command()
@click.option("-c", "--config", "config_path", help="config file path")
@click.option("-d", "--debug", is_flag=True)
@click.option("--sql", is_flag=True, help="log every sql statement")
@click.option("-h", "--host", default="0.0.0.0")
@click.option("-p", "--port", type=int, default=None)
def main(config_path=None, debug=False, sql=False, host="0.0.0.0",
         port=None):
    try:
        replicator = bootstrap(config_path, debug, sql)
    except ReplicationError as e:
        echo("Error: %s" % e)
        sys.exit(1)

    port = port or int(replicator.config.get("port", DEFAULT_PORT))
    app = create_app(replicator, replicator.config)
    echo("Serving %s mode replication api on %s:%s" % (
        replicator.mode.value, host, port))
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False,
                threaded=True)
    finally:
        replicator.registry.close_all()

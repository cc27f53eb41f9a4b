# -*- coding: utf-8 -*-

"""
Row level events of a sync pass, shaped as ``table_action`` signals.

Every change the table sync applies is published on two signals::

    signal("users_write").send(1)
    signal("users_write_raw").send({"id": 1, "name": "A"})

Actions are ``write``, ``update`` and ``delete``; the raw delete signal
sends ``{primary_key: value}`` since the row is already gone.

Subscribe with::

    @signal("users_update").connect
    def on_update(pk):
        print(pk)
"""

from blinker import Namespace

# The namespace for dbferry signals.
_signals = Namespace()
signal = _signals.signal


def publish(table, action, pk, row):
    sg_name = "%s_%s" % (table, action)
    signal(sg_name).send(pk)
    signal("%s_raw" % sg_name).send(row)

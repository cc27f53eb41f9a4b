# -*- coding: utf-8 -*-

"""
dbferry
~~~~~~~

Periodic full-table replication between relational databases.
"""

__version__ = "0.3.0"

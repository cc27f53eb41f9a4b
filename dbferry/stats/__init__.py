# -*- coding: utf-8 -*-

"""
Sync run accounting.

:class:`MemoryStats` only counts for the process lifetime,
:class:`DatabaseStats` also persists runs, per table stats and errors to the
``stats`` database when one is configured.
"""

from .base import Stats
from .database import DatabaseStats
from .memory import MemoryStats

__all__ = ["Stats", "MemoryStats", "DatabaseStats", "stats_from_config"]


def stats_from_config(registry, config, strict=False):
    """Pick the stats implementation from config presence.

    :param registry: connection registry.
    :param config: the loaded config dict.
    """
    if (config.get("databases") or {}).get("stats") and \
            registry.is_connected("stats"):
        return DatabaseStats(registry, "stats", strict=strict)
    return MemoryStats()

# -*- coding: utf-8 -*-

"""
    dbferry.exceptions
    ~~~~~~~~~~~~~~~~~~

    Errors raised by the replication layers. Everything derives from
    :class:`ReplicationError`, the replicator catches it at the top level
    and turns it into a failed sync result.
"""


class ReplicationError(Exception):
    """Base class for all dbferry errors."""


class InvalidIdentifier(ReplicationError):
    def __init__(self, name):
        self.name = name
        super().__init__(
            "Invalid identifier: %r. Only alphanumeric characters and "
            "underscores are allowed." % (name,))


class NotConnected(ReplicationError):
    def __init__(self, role):
        self.role = role
        super().__init__("No connection found for %s" % role)


class DatabaseError(ReplicationError):
    """Driver level failure, ``orig`` keeps the original exception."""

    def __init__(self, message, orig=None):
        self.orig = orig
        super().__init__(message)


class ConfigurationError(ReplicationError):
    pass


class RemoteError(ReplicationError):
    """A remote environment could not be reached or answered with an error.
    """

    def __init__(self, message, status=None):
        self.status = status
        super().__init__(message)


class SyncInProgress(ReplicationError):
    def __init__(self):
        super().__init__("sync already in progress")

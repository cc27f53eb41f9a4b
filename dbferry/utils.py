# -*- coding: utf-8 -*-

import datetime
import decimal
import re

from .exceptions import InvalidIdentifier

TS_FORMAT = "%Y-%m-%d %H:%M:%S"

_identifier_re = re.compile(r"^[A-Za-z0-9_]+$")


def validate_identifier(name):
    """Check a table or column name before it is put into a sql statement.

    Identifiers are interpolated as bare sql tokens (values are always
    bound), so anything but ``[A-Za-z0-9_]+`` is rejected.

    :param name: the identifier to check.
    :return: the identifier itself.
    :raises InvalidIdentifier: when the name is unsafe.
    """
    if not isinstance(name, str) or not _identifier_re.match(name):
        raise InvalidIdentifier(name)
    return name


def quote(name):
    """validate then backtick quote identifier"""
    return "`%s`" % validate_identifier(name)


def cast_str(s, encoding='utf8', errors='strict'):
    """cast bytes or str to str"""
    if isinstance(s, bytes):
        return s.decode(encoding, errors)
    elif isinstance(s, str):
        return s
    else:
        raise TypeError("Expected unicode or bytes, got %r" % s)


def cast_pk(value):
    """Primary key values are kept as their string form in metadata,
    whatever the native column type.
    """
    if isinstance(value, (bytes, str)):
        return cast_str(value)
    return str(value)


def format_ts(value):
    """Render a timestamp value in ``YYYY-mm-dd HH:MM:SS`` form.

    ``None`` and strings pass through untouched.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, datetime.datetime):
        return value.strftime(TS_FORMAT)
    if isinstance(value, datetime.date):
        return value.isoformat()
    return str(value)

def parse_ts(value):
    """Turn a ``YYYY-mm-dd HH:MM:SS`` (or iso) string into a datetime."""
    if value is None or isinstance(value, datetime.datetime):
        return value
    value = cast_str(value).strip()
    try:
        return datetime.datetime.strptime(value, TS_FORMAT)
    except ValueError:
        return datetime.datetime.fromisoformat(value)


def now():
    return datetime.datetime.now().replace(microsecond=0)


def json_default(o):
    """``default`` hook for json dumps of database rows."""
    if isinstance(o, (datetime.datetime, datetime.date)):
        return format_ts(o)
    if isinstance(o, decimal.Decimal):
        return str(o)
    if isinstance(o, bytes):
        return cast_str(o, errors="replace")
    raise TypeError("Object of type %s is not JSON serializable" %
                    type(o).__name__)

# -*- coding: utf-8 -*-

"""
    dbferry.api
    ~~~~~~~~~~~

    HTTP api of a dbferry environment, used by operators to trigger syncs
    and read stats, and by remote environments to push and pull rows.

    Write and data routes require an ``X-API-Key`` header matching one of
    ``api.keys`` in config, an empty key list disables the check.
"""

import functools
import hmac
import logging

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from werkzeug.exceptions import HTTPException

from .config import sanitize_config
from .exceptions import ReplicationError
from .utils import format_ts, json_default, now

logger = logging.getLogger("dbferry.api")

MAX_LIMIT = 100


class RowJSONProvider(DefaultJSONProvider):
    """Render database values the way the sql side writes them."""
    sort_keys = False

    @staticmethod
    def default(o):
        try:
            return json_default(o)
        except TypeError:
            return DefaultJSONProvider.default(o)


def clamp_limit(value, default):
    """Parse a ``limit`` query arg into ``[1, 100]``."""
    try:
        limit = int(value) if value is not None else default
    except ValueError:
        limit = default
    return max(1, min(limit, MAX_LIMIT))


def is_authorized(api_key, keys):
    if not keys:
        return True
    if not api_key:
        return False
    api_key = api_key.encode("utf-8")
    return any(hmac.compare_digest(api_key, k.encode("utf-8")) for k in keys)


def create_app(replicator, config):
    """Build the flask app.

    :param replicator: the local :class:`dbferry.replicator.Replicator`.
    :param config: the loaded config dict.
    """
    app = Flask("dbferry")
    app.json = RowJSONProvider(app)

    api_keys = list((config.get("api") or {}).get("keys") or [])
    stats = replicator.stats

    def require_api_key(f):
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            if not is_authorized(request.headers.get("X-API-Key"), api_keys):
                logger.warning("unauthorized request to %s from %s" % (
                    request.path, request.remote_addr))
                return jsonify(error="Unauthorized"), 401
            return f(*args, **kwargs)
        return wrapper

    def failed(action, table, e):
        if isinstance(e, ReplicationError):
            logger.error("%s of %s failed: %s" % (action, table, e))
        else:
            logger.exception(e)
        return jsonify(success=False, error=str(e)), 500

    def stats_unavailable(key):
        return jsonify({"error": "Stats database not configured", key: []})

    @app.get("/api/status")
    def status():
        return jsonify(mode=replicator.mode.value, status="running",
                       stats=replicator.get_stats(),
                       timestamp=format_ts(now()))

    @app.get("/api/config")
    @require_api_key
    def get_config():
        return jsonify(sanitize_config(config))

    @app.post("/api/sync")
    def sync():
        result = replicator.sync()
        return jsonify(result.as_dict()), 200 if result.success else 500

    @app.post("/api/push")
    @require_api_key
    def push():
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or \
                "table" not in body or "data" not in body:
            return jsonify(
                success=False,
                error="Missing required parameters: table and data"), 400
        data = body["data"]
        if not isinstance(data, list) or \
                not all(isinstance(row, dict) for row in data):
            return jsonify(success=False,
                           error="data must be a list of row objects"), 400
        try:
            result = replicator.push_data_to_local(body["table"], data)
        except Exception as e:
            return failed("push", body["table"], e)
        return jsonify(success=True, result=result)

    @app.get("/api/pull")
    @require_api_key
    def pull():
        table = request.args.get("table")
        if not table:
            return jsonify(success=False,
                           error="Missing required parameter: table"), 400
        try:
            rows = replicator.pull_data_from_local(
                table, request.args.get("since") or None)
        except Exception as e:
            return failed("pull", table, e)
        return jsonify(success=True, table=table, data=rows,
                       timestamp=format_ts(now()))

    @app.get("/api/metadata")
    @require_api_key
    def metadata():
        table = request.args.get("table")
        if not table:
            return jsonify(success=False,
                           error="Missing required parameter: table"), 400
        try:
            meta = replicator.get_table_metadata(table)
        except Exception as e:
            return failed("metadata", table, e)
        return jsonify(success=True, table=table, metadata=meta)

    @app.get("/api/stats/history")
    def stats_history():
        if not stats.persistent:
            return stats_unavailable("history")
        limit = clamp_limit(request.args.get("limit"), 10)
        try:
            history = stats.history(limit)
        except ReplicationError as e:
            return jsonify(error="Failed to retrieve history: %s" % e,
                           history=[]), 500
        return jsonify(history=history, count=len(history))

    @app.get("/api/stats/table")
    def stats_table():
        if not stats.persistent:
            return stats_unavailable("stats")
        table = request.args.get("table")
        if not table:
            return jsonify(error="Table name parameter required",
                           stats=[]), 400
        limit = clamp_limit(request.args.get("limit"), 10)
        try:
            rows = stats.table_history(table, limit)
        except ReplicationError as e:
            return jsonify(error="Failed to retrieve table stats: %s" % e,
                           stats=[]), 500
        return jsonify(table=table, stats=rows, count=len(rows))

    @app.get("/api/stats/errors")
    def stats_errors():
        if not stats.persistent:
            return stats_unavailable("errors")
        limit = clamp_limit(request.args.get("limit"), 20)
        try:
            errors = stats.errors(limit)
        except ReplicationError as e:
            return jsonify(error="Failed to retrieve errors: %s" % e,
                           errors=[]), 500
        return jsonify(errors=errors, count=len(errors))

    @app.errorhandler(HTTPException)
    def http_error(e):
        if e.code == 404:
            return jsonify(error="Route not found"), 404
        return jsonify(error=e.description), e.code

    @app.errorhandler(Exception)
    def internal_error(e):
        logger.exception(e)
        return jsonify(error=str(e)), 500

    return app

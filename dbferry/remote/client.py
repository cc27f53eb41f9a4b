# -*- coding: utf-8 -*-

import json
import logging

import requests

from ..exceptions import RemoteError
from ..utils import json_default


class ApiClient:
    """HTTP client of a remote dbferry api.

    :param base_url: root url of the remote environment.
    :param api_key: sent as the ``X-API-Key`` header when given.
    :param timeout: request timeout in seconds.
    """

    def __init__(self, base_url, api_key=None, timeout=30):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logging.getLogger("dbferry.remote.client")

        self.session = requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        if api_key:
            self.session.headers["X-API-Key"] = api_key

    def get_status(self):
        return self.request("GET", "/api/status")

    def get_config(self):
        return self.request("GET", "/api/config")

    def trigger_sync(self):
        return self.request("POST", "/api/sync")

    def push_data(self, table, rows):
        return self.request("POST", "/api/push", {"table": table, "data": rows})

    def pull_data(self, table, since=None):
        params = {"table": table}
        if since is not None:
            params["since"] = since
        return self.request("GET", "/api/pull", params)

    def get_metadata(self, table):
        return self.request("GET", "/api/metadata", {"table": table})

    def request(self, method, endpoint, data=None):
        """Send a request and decode the json answer.

        GET data goes to the query string, POST data to a json body.

        :raises RemoteError: on transport error, status >= 400 or a body
         which is not json.
        """
        url = self.base_url + endpoint
        kwargs = {"timeout": self.timeout}
        if method == "GET":
            kwargs["params"] = data
        elif data is not None:
            kwargs["data"] = json.dumps(data, default=json_default)

        self.logger.debug("%s %s" % (method, url))
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise RemoteError("API request failed: %s" % e) from e

        if resp.status_code >= 400:
            raise RemoteError("API request failed with status %s: %s" % (
                resp.status_code, resp.text), status=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise RemoteError("Invalid JSON response: %s" % e,
                              status=resp.status_code) from e

    def close(self):
        self.session.close()

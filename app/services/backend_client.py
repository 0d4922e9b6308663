# app/services/backend_client.py
"""
Thin client for the hosted backend (GoTrue auth, PostgREST tables, object storage).

Every call is a single request/response; failures raise BackendError and are
never retried.
"""
import copy
import logging
from urllib.parse import quote

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class BackendError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response):
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return str(body)


def _format_value(value):
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TableQuery:
    """Chainable PostgREST query; nothing is sent until execute()."""

    def __init__(self, client, table):
        self._client = client
        self._table = table
        self._method = "GET"
        self._columns = "*"
        self._filters = []
        self._order = []
        self._limit = None
        self._body = None
        self._single = False

    # --- verbs ---
    def select(self, columns="*"):
        self._method = "GET"
        self._columns = columns
        return self

    def insert(self, rows):
        self._method = "POST"
        self._body = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, values):
        self._method = "PATCH"
        self._body = values
        return self

    def delete(self):
        self._method = "DELETE"
        return self

    # --- filters ---
    def _filter(self, column, op, value):
        self._filters.append((column, f"{op}.{_format_value(value)}"))
        return self

    def eq(self, column, value):
        return self._filter(column, "eq", value)

    def neq(self, column, value):
        return self._filter(column, "neq", value)

    def lt(self, column, value):
        return self._filter(column, "lt", value)

    def lte(self, column, value):
        return self._filter(column, "lte", value)

    def gt(self, column, value):
        return self._filter(column, "gt", value)

    def gte(self, column, value):
        return self._filter(column, "gte", value)

    def is_(self, column, value):
        return self._filter(column, "is", value)

    def or_(self, expression):
        # e.g. "end_date.gte.2024-06-10,end_date.is.null"
        self._filters.append(("or", f"({expression})"))
        return self

    def order(self, column, desc=False):
        self._order.append(f"{column}.{'desc' if desc else 'asc'}")
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._single = True
        return self

    def params(self):
        params = [("select", self._columns)] + list(self._filters)
        if self._order:
            params.append(("order", ",".join(self._order)))
        if self._limit is not None:
            params.append(("limit", str(self._limit)))
        return params

    def execute(self):
        headers = {}
        if self._method != "GET":
            headers["Prefer"] = "return=representation"
        if self._single:
            headers["Accept"] = "application/vnd.pgrst.object+json"
        response = self._client.request(
            self._method,
            f"/rest/v1/{self._table}",
            params=self.params(),
            json=self._body,
            headers=headers,
        )
        if response.status_code == 204 or not response.content:
            return None if self._single else []
        return response.json()


class StorageBucket:
    def __init__(self, client, bucket):
        self._client = client
        self.bucket = bucket

    def upload(self, path, data, content_type="application/octet-stream"):
        self._client.request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{quote(path)}",
            data=data,
            headers={"Content-Type": content_type},
        )
        return path

    def get_public_url(self, path):
        return f"{self._client.url}/storage/v1/object/public/{self.bucket}/{quote(path)}"


class BackendClient:
    def __init__(self, url, api_key, timeout=10, session=None, access_token=None):
        self.url = (url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.http = session or requests.Session()
        self.access_token = access_token

    def authorized(self, access_token):
        """Copy of this client acting as the signed-in user."""
        clone = copy.copy(self)
        clone.access_token = access_token
        return clone

    def _headers(self, extra=None, access_token=None):
        token = access_token or self.access_token or self.api_key
        headers = {
            "apikey": self.api_key or "",
            "Authorization": f"Bearer {token}",
        }
        if extra:
            headers.update(extra)
        return headers

    def request(self, method, path, params=None, json=None, data=None, headers=None, access_token=None):
        if not self.url:
            raise BackendError("Backend URL is not configured")
        try:
            response = self.http.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                data=data,
                headers=self._headers(headers, access_token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Backend %s %s failed: %s", method, path, e)
            raise BackendError(f"Backend unreachable: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("Backend %s %s -> %s: %s", method, path, response.status_code, message)
            raise BackendError(message, status_code=response.status_code)
        return response

    # --- auth ---
    def sign_up(self, email, password, metadata=None):
        payload = {"email": email, "password": password}
        if metadata:
            payload["data"] = metadata
        return self.request("POST", "/auth/v1/signup", json=payload).json()

    def sign_in_with_password(self, email, password):
        return self.request(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        ).json()

    def refresh_session(self, refresh_token):
        return self.request(
            "POST", "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        ).json()

    def get_user(self, access_token=None):
        return self.request("GET", "/auth/v1/user", access_token=access_token).json()

    def sign_out(self, access_token=None):
        self.request("POST", "/auth/v1/logout", access_token=access_token)

    # --- data ---
    def table(self, name):
        return TableQuery(self, name)

    def storage(self, bucket):
        return StorageBucket(self, bucket)


def get_backend() -> BackendClient:
    return current_app.extensions["medtrack.backend"]

import itertools
import unittest
from datetime import date
from unittest.mock import patch

from app import create_app
from app.extensions import db
from app.services.backend_client import BackendError
from app.utils.state_store import StateStore

TODAY = date(2024, 6, 10)


def _matches(op, row_value, value):
    if op == "eq":
        return str(row_value) == str(value) if row_value is not None else value is None
    if op == "neq":
        return str(row_value) != str(value)
    if op == "is":
        return row_value is value
    if row_value is None:
        return False
    return {
        "lt": row_value < value,
        "lte": row_value <= value,
        "gt": row_value > value,
        "gte": row_value >= value,
    }[op]


class FakeQuery:
    def __init__(self, backend, table):
        self.backend = backend
        self.table = table
        self.method = "select"
        self.body = None
        self.filters = []
        self.ordering = []
        self.row_limit = None
        self.want_single = False

    def select(self, columns="*"):
        self.method = "select"
        return self

    def insert(self, rows):
        self.method = "insert"
        self.body = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, values):
        self.method = "update"
        self.body = values
        return self

    def delete(self):
        self.method = "delete"
        return self

    def _filter(self, op, column, value):
        self.filters.append(lambda row: _matches(op, row.get(column), value))
        return self

    def eq(self, column, value):
        return self._filter("eq", column, value)

    def neq(self, column, value):
        return self._filter("neq", column, value)

    def lt(self, column, value):
        return self._filter("lt", column, value)

    def lte(self, column, value):
        return self._filter("lte", column, value)

    def gt(self, column, value):
        return self._filter("gt", column, value)

    def gte(self, column, value):
        return self._filter("gte", column, value)

    def is_(self, column, value):
        return self._filter("is", column, value)

    def or_(self, expression):
        raise NotImplementedError("or_ filters are not used by the app")

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def single(self):
        self.want_single = True
        return self

    def execute(self):
        self.backend.calls.append((self.table, self.method))
        if self.table in self.backend.fail_tables:
            raise BackendError(f"{self.table} unavailable", status_code=500)
        rows = self.backend.tables.setdefault(self.table, [])

        if self.method == "insert":
            result = []
            for row in self.body:
                row = dict(row)
                row.setdefault("id", next(self.backend.ids))
                row.setdefault("created_at", f"2024-06-01T00:00:{len(rows):02d}")
                rows.append(row)
                result.append(dict(row))
        else:
            matched = [r for r in rows if all(f(r) for f in self.filters)]
            if self.method == "update":
                for row in matched:
                    row.update(self.body)
            elif self.method == "delete":
                for row in matched:
                    rows.remove(row)
            for column, desc in reversed(self.ordering):
                matched.sort(key=lambda r: str(r.get(column) or ""), reverse=desc)
            if self.row_limit is not None:
                matched = matched[:self.row_limit]
            result = [dict(r) for r in matched]

        if self.want_single:
            if len(result) != 1:
                raise BackendError("JSON object requested, multiple (or no) rows returned", status_code=406)
            return result[0]
        return result


class FakeBucket:
    def __init__(self, backend, bucket):
        self.backend = backend
        self.bucket = bucket

    def upload(self, path, data, content_type="application/octet-stream"):
        if self.backend.fail_upload:
            raise BackendError("The resource already exists", status_code=409)
        self.backend.objects[path] = (data, content_type)
        return path

    def get_public_url(self, path):
        return f"https://backend.test/storage/v1/object/public/{self.bucket}/{path}"


class FakeBackend:
    """In-memory stand-in for BackendClient with the same surface."""

    def __init__(self):
        self.users = {}
        self.tables = {"UsersData": [], "medications": []}
        self.objects = {}
        self.calls = []
        self.signed_out = []
        self.fail_upload = False
        self.fail_tables = set()
        self.ids = itertools.count(1)
        self._tokens = itertools.count(1)

    def authorized(self, access_token):
        return self

    # --- auth ---
    def create_user(self, email, password, user_type=None, confirmed=True):
        user_id = f"user-{len(self.users) + 1}"
        self.users[email] = {
            "id": user_id, "email": email, "password": password,
            "confirmed": confirmed, "user_metadata": {"user_type": user_type} if user_type else {},
        }
        return user_id

    def _public(self, user):
        return {"id": user["id"], "email": user["email"], "user_metadata": user["user_metadata"]}

    def _token(self, user):
        n = next(self._tokens)
        return {
            "access_token": f"access-{user['id']}-{n}",
            "refresh_token": f"refresh-{user['id']}-{n}",
            "expires_in": 3600,
            "user": self._public(user),
        }

    def sign_up(self, email, password, metadata=None):
        if email in self.users:
            raise BackendError("User already registered", status_code=422)
        self.create_user(email, password, (metadata or {}).get("user_type"))
        return {"user": self._public(self.users[email])}

    def sign_in_with_password(self, email, password):
        user = self.users.get(email)
        if not user or user["password"] != password:
            raise BackendError("Invalid login credentials", status_code=400)
        if not user["confirmed"]:
            raise BackendError("Email not confirmed", status_code=400)
        return self._token(user)

    def refresh_session(self, refresh_token):
        for user in self.users.values():
            if refresh_token.startswith(f"refresh-{user['id']}-"):
                return self._token(user)
        raise BackendError("Invalid Refresh Token", status_code=400)

    def get_user(self, access_token=None):
        return {}

    def sign_out(self, access_token=None):
        self.signed_out.append(access_token)

    # --- data ---
    def table(self, name):
        return FakeQuery(self, name)

    def storage(self, bucket):
        return FakeBucket(self, bucket)


class ApiTestCase(unittest.TestCase):
    """Flask test client over the fake backend, with "today" pinned to TODAY."""

    today = TODAY

    def setUp(self):
        self.backend = FakeBackend()
        self.state = StateStore(redis_url="", file_cache=False)
        self.app = create_app(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": "sqlite://",
                "JWT_SECRET_KEY": "test-secret-key-with-enough-length-for-hs256",
                "EMAIL_ENABLED": False,
            },
            backend=self.backend,
            state_store=self.state,
        )
        self.client = self.app.test_client()
        with self.app.app_context():
            db.create_all()

        patcher = patch("app.utils.clock.today", return_value=self.today)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()

    def add_user(self, email, user_type, username, password="secret1", assigned=None, confirmed=True):
        user_id = self.backend.create_user(email, password, user_type, confirmed)
        profile = {"id": user_id, "email": email, "username": username, "user_type": user_type}
        if assigned:
            profile["Assigned"] = assigned
        self.backend.tables["UsersData"].append(profile)
        return user_id

    def add_medication(self, patient_id, **fields):
        row = {
            "id": next(self.backend.ids),
            "patient_id": patient_id,
            "medication_name": "Metformin",
            "dosage": "500 mg",
            "frequency": "Once daily",
            "start_date": "2024-06-01",
            "end_date": "2024-06-30",
            "taken": False,
            "taken_date": [],
            "image_url": None,
            "created_at": f"2024-06-01T08:00:{len(self.backend.tables['medications']):02d}",
        }
        row.update(fields)
        self.backend.tables["medications"].append(row)
        return row

    def login(self, email, password="secret1"):
        resp = self.client.post("/api/v1/auth/login", json={"email": email, "password": password})
        self.assertEqual(resp.status_code, 200, resp.get_json())
        return {"Authorization": f"Bearer {resp.get_json()['access_token']}"}

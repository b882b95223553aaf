"""
In-memory stand-in for the parts of supabase-py the service uses.

Only the query builder calls made by the code under test are implemented.
Failures can be injected per ``(table, operation)`` with ``fail_on``.
"""

import copy
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace


class FakeAPIError(Exception):
    pass


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _now():
    return datetime.now(timezone.utc).isoformat()


def _ilike(value, pattern):
    text = (value or "").lower()
    needle = pattern.lower().strip("*")
    if pattern.startswith("*") and pattern.endswith("*"):
        return needle in text
    return text == needle


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.orders = []
        self.limit_n = None
        self.range_ = None
        self.single = False
        self.count = None
        self.on_conflict = None

    # operations
    def select(self, columns="*", count=None):
        self.op = "select"
        self.count = count
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def upsert(self, payload, on_conflict="id"):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def is_(self, column, value):
        if value == "null":
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: r.get(column) is value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def or_(self, expression):
        clauses = []
        for part in expression.split(","):
            column, operator, pattern = part.split(".", 2)
            assert operator == "ilike"
            clauses.append((column, pattern))
        self.filters.append(lambda r: any(_ilike(r.get(c), p) for c, p in clauses))
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def range(self, start, end):
        self.range_ = (start, end)
        return self

    def maybe_single(self):
        self.single = True
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        failure = self.db.failures.get((self.table, self.op))
        if failure:
            raise failure
        rows = self.db.tables.setdefault(self.table, [])
        return getattr(self, f"_execute_{self.op}")(rows)

    def _execute_select(self, rows):
        found = [copy.deepcopy(r) for r in rows if self._matches(r)]
        for column, desc in reversed(self.orders):
            found.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        total = len(found)
        if self.range_:
            found = found[self.range_[0]:self.range_[1] + 1]
        if self.limit_n is not None:
            found = found[:self.limit_n]
        if self.single:
            if len(found) > 1:
                raise FakeAPIError("multiple rows returned for maybe_single")
            return FakeResponse(found[0]) if found else None
        return FakeResponse(found, total if self.count else None)

    def _execute_insert(self, rows):
        items = self.payload if isinstance(self.payload, list) else [self.payload]
        created = []
        for item in items:
            row = {"id": str(uuid.uuid4()), "created_at": _now(), **copy.deepcopy(item)}
            rows.append(row)
            created.append(copy.deepcopy(row))
        return FakeResponse(created)

    def _execute_update(self, rows):
        updated = []
        for row in rows:
            if self._matches(row):
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
        return FakeResponse(updated)

    def _execute_upsert(self, rows):
        key = self.on_conflict
        for row in rows:
            if row.get(key) == self.payload.get(key):
                row.update(copy.deepcopy(self.payload))
                return FakeResponse([copy.deepcopy(row)])
        return self._execute_insert(rows)

    def _execute_delete(self, rows):
        removed = [r for r in rows if self._matches(r)]
        self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
        return FakeResponse(removed)


class FakeAuthAdmin:
    def __init__(self):
        self.users = []
        self.create_error = None
        self.updates = []

    def list_users(self, page=1, per_page=50):
        start = (page - 1) * per_page
        return self.users[start:start + per_page]

    def create_user(self, attributes):
        if self.create_error:
            raise self.create_error
        user = SimpleNamespace(
            id=str(uuid.uuid4()),
            email=attributes["email"],
            user_metadata=attributes.get("user_metadata", {}),
            app_metadata={},
        )
        self.users.append(user)
        return SimpleNamespace(user=user)

    def update_user_by_id(self, user_id, attributes):
        self.updates.append((user_id, attributes))
        for user in self.users:
            if user.id == user_id:
                user.user_metadata = attributes.get("user_metadata", user.user_metadata)
                return SimpleNamespace(user=user)
        raise FakeAPIError("User not found")


class FakeAuth:
    def __init__(self):
        self.admin = FakeAuthAdmin()
        self.sessions = {}

    def get_user(self, jwt=None):
        user = self.sessions.get(jwt)
        if user is None:
            raise FakeAPIError("invalid JWT")
        return SimpleNamespace(user=user)


class FakeSupabase:
    def __init__(self, **tables):
        self.tables = {name: [dict(r) for r in rows] for name, rows in tables.items()}
        self.failures = {}
        self.calls = []
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def fail_on(self, table, op, error=None):
        self.failures[(table, op)] = error or FakeAPIError(f"{op} on {table} failed")

    def rows(self, table):
        return self.tables.get(table, [])

    def add_session(self, token, user_id, email="user@example.com"):
        self.auth.sessions[token] = SimpleNamespace(
            id=user_id, email=email, user_metadata={}, app_metadata={}
        )

import os
from datetime import datetime, timezone

os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "header.payload.signature")
os.environ.setdefault("JWT_SECRET", "test-secret")

import bcrypt
import pytest

from yamo.auth import dependencies as auth_dependencies
from yamo.auth.jwt import create_access_token
from yamo.domain import teams as team_lookups
from yamo.domain.claims import NO_TEAM, Principal, TeamContext
from yamo.routers import accounts, books, categories, reports, teams, transactions, users

SUPABASE_MODULES = (auth_dependencies, team_lookups, users, teams, books, accounts, categories, transactions, reports)


def _hash(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=4)).decode()


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table_name: str, db: "FakeSupabase"):
        self.table_name = table_name
        self.db = db
        self.operation = "select"
        self.filters = []
        self.payload = None
        self.order_key = None
        self.order_desc = False
        self.limit_count = None

    def select(self, _fields: str = "*"):
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, key: str, value):
        self.filters.append(lambda row: row.get(key) == value)
        return self

    def neq(self, key: str, value):
        self.filters.append(lambda row: row.get(key) != value)
        return self

    def is_(self, key: str, value):
        if value == "null":
            self.filters.append(lambda row: row.get(key) is None)
        else:
            self.filters.append(lambda row: row.get(key) is not None)
        return self

    def in_(self, key: str, values):
        allowed = set(values)
        self.filters.append(lambda row: row.get(key) in allowed)
        return self

    def ilike(self, key: str, pattern: str):
        needle = pattern.strip("%").lower()
        self.filters.append(lambda row: needle in str(row.get(key) or "").lower())
        return self

    def gte(self, key: str, value):
        self.filters.append(lambda row: row.get(key) is not None and str(row.get(key)) >= str(value))
        return self

    def lte(self, key: str, value):
        self.filters.append(lambda row: row.get(key) is not None and str(row.get(key)) <= str(value))
        return self

    def order(self, key: str, desc: bool = False):
        self.order_key = key
        self.order_desc = desc
        return self

    def limit(self, count: int):
        self.limit_count = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(check(row) for check in self.filters)

    def execute(self):
        table = self.db.tables.setdefault(self.table_name, [])
        self.db.calls.append((self.table_name, self.operation))

        if self.operation == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for payload in payloads:
                row = dict(payload or {})
                row.setdefault("id", self.db.next_id(self.table_name))
                row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                table.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        matched = [row for row in table if self._matches(row)]
        if self.operation == "update":
            for row in matched:
                row.update(self.payload or {})
            return FakeResponse([dict(row) for row in matched])
        if self.operation == "delete":
            self.db.tables[self.table_name] = [row for row in table if not self._matches(row)]
            return FakeResponse([dict(row) for row in matched])

        rows = [dict(row) for row in matched]
        if self.order_key:
            rows.sort(key=lambda row: (row.get(self.order_key) is None, row.get(self.order_key)), reverse=self.order_desc)
        if self.limit_count is not None:
            rows = rows[: self.limit_count]
        return FakeResponse(rows)


class FakeSupabase:
    def __init__(self, tables: dict | None = None):
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.calls = []
        self._ids = {}

    def next_id(self, table_name: str) -> int:
        existing = [row.get("id") for row in self.tables.get(table_name, []) if isinstance(row.get("id"), int)]
        self._ids[table_name] = max([self._ids.get(table_name, 0), *existing]) + 1
        return self._ids[table_name]

    def table(self, table_name: str):
        return FakeQuery(table_name, self)

    def mutations(self, table_name: str) -> list[str]:
        return [op for name, op in self.calls if name == table_name and op != "select"]


def install_fake_db(monkeypatch, tables: dict | None = None) -> FakeSupabase:
    fake_db = FakeSupabase(tables)
    for module in SUPABASE_MODULES:
        monkeypatch.setattr(module, "supabase", fake_db)
    return fake_db


def ledger_tables() -> dict:
    """Two teams; team 7 holds books 41 and 42, team 8 holds book 50."""
    return {
        "users": [
            {"id": 1, "username": "admin", "password_hash": _hash("admin-pass"), "superadmin": False},
            {"id": 2, "username": "collab", "password_hash": "x", "superadmin": False},
            {"id": 3, "username": "viewer", "password_hash": _hash("viewer-pass"), "superadmin": False},
            {"id": 4, "username": "root", "password_hash": _hash("root-pass"), "superadmin": True},
            {"id": 5, "username": "outsider", "password_hash": "x", "superadmin": False},
        ],
        "teams": [
            {"id": 7, "name": "Household", "deleted_at": None},
            {"id": 8, "name": "Business", "deleted_at": None},
        ],
        "team_users": [
            {"team_id": 7, "user_id": 1, "role": "admin"},
            {"team_id": 7, "user_id": 2, "role": "collaborator"},
            {"team_id": 7, "user_id": 3, "role": "viewer"},
            {"team_id": 8, "user_id": 1, "role": "viewer"},
            {"team_id": 8, "user_id": 5, "role": "admin"},
        ],
        "books": [
            {"id": 41, "team_id": 7, "name": "2023", "note": None, "deleted_at": None},
            {"id": 42, "team_id": 7, "name": "2024", "note": None, "deleted_at": None},
            {"id": 50, "team_id": 8, "name": "Shop", "note": None, "deleted_at": None},
        ],
        "accounts": [
            {"id": 410, "book_id": 41, "name": "Old checking", "note": None, "type": "debit"},
            {"id": 420, "book_id": 42, "name": "Checking", "note": None, "type": "debit"},
            {"id": 421, "book_id": 42, "name": "Card", "note": None, "type": "credit"},
            {"id": 500, "book_id": 50, "name": "Till", "note": None, "type": "debit"},
        ],
        "categories": [
            {"id": 901, "book_id": 42, "name": "Food", "note": None, "type": "expense", "parent_category_id": None},
            {"id": 902, "book_id": 42, "name": "Salary", "note": None, "type": "income", "parent_category_id": None},
        ],
        "transactions": [
            {
                "id": 7001,
                "account_id": 420,
                "category_id": 901,
                "description": "Groceries",
                "note": None,
                "amount": "54.20",
                "date": "2024-03-02",
                "exercised": False,
            },
            {
                "id": 7002,
                "account_id": 421,
                "category_id": 902,
                "description": "Payroll",
                "note": None,
                "amount": "2500.00",
                "date": "2024-03-28",
                "exercised": True,
            },
            {
                "id": 7003,
                "account_id": 500,
                "category_id": None,
                "description": "Stock",
                "note": None,
                "amount": "80.00",
                "date": "2024-03-05",
                "exercised": False,
            },
        ],
    }


@pytest.fixture
def fake_db(monkeypatch):
    return install_fake_db(monkeypatch, ledger_tables())


def token_for(user_id: int, username: str, *, team: tuple | None = None, superadmin: bool = False) -> str:
    """Signed session token; ``team`` is ``(team_id, team_name, role)``."""
    claim = TeamContext(*team) if team else NO_TEAM
    return create_access_token(Principal(user_id=user_id, username=username, is_superadmin=superadmin), claim)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}

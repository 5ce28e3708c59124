"""
Pytest fixtures and test configuration for kanjou tests.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

from kanjou import Kanjou
from kanjou.config import Settings
from kanjou.gateway import RemoteGateway
from kanjou.identity import IdentityResolver
from kanjou.storage import LocalStore


class FakeResponse:
    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable query mirroring the supabase-py builder calls kanjou makes."""

    def __init__(self, client: "FakeSupabase", table: str, op: str, payload: Any = None, **opts):
        self._client = client
        self._table = table
        self._op = op
        self._payload = payload
        self._opts = opts
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None
        self._single = False

    def select(self, *_fields, **_kwargs):
        return self

    def eq(self, field, value):
        self._filters.append(lambda row: row.get(field) == value)
        return self

    def in_(self, field, values):
        values = list(values)
        self._filters.append(lambda row: row.get(field) in values)
        return self

    def or_(self, filters: str):
        clauses = []
        for clause in filters.split(","):
            field, op, pattern = clause.split(".", 2)
            assert op == "ilike"
            clauses.append((field, pattern.strip("%").lower()))
        self._filters.append(
            lambda row: any(p in str(row.get(f) or "").lower() for f, p in clauses)
        )
        return self

    def order(self, field, desc=False):
        self._order = (field, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._single = True
        return self

    def _matches(self, row):
        return all(f(row) for f in self._filters)

    def execute(self):
        self._client.calls.append({"table": self._table, "op": self._op, "payload": self._payload})
        if self._client.on_execute:
            self._client.on_execute(self._table, self._op, self._payload)
        for table, op, predicate, error in self._client.failures:
            if table == self._table and op == self._op and predicate(self._payload):
                raise error

        rows = self._client.tables.setdefault(self._table, [])
        handler = getattr(self, f"_execute_{self._op}")
        return handler(rows)

    def _execute_select(self, rows):
        result = [dict(r) for r in rows if self._matches(r)]
        if self._order:
            field, desc = self._order
            result.sort(key=lambda r: r.get(field) or "", reverse=desc)
        if self._limit is not None:
            result = result[: self._limit]
        if self._single:
            if len(result) != 1:
                raise APIError(
                    {
                        "code": "PGRST116",
                        "message": "JSON object requested, multiple (or no) rows returned",
                        "details": f"The result contains {len(result)} rows",
                        "hint": None,
                    }
                )
            return FakeResponse(result[0])
        return FakeResponse(result, count=len(result))

    def _prepare(self, row):
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        if not row.get("created_at"):
            row["created_at"] = datetime.now(timezone.utc).isoformat()
        return row

    def _execute_insert(self, rows):
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        inserted = []
        for item in payload:
            row = self._prepare(item)
            for unique in self._client.unique.get(self._table, ()):
                if any(r.get(unique) == row.get(unique) for r in rows):
                    raise APIError(
                        {
                            "code": "23505",
                            "message": f"duplicate key value violates unique constraint on {unique}",
                            "details": None,
                            "hint": None,
                        }
                    )
            rows.append(row)
            inserted.append(dict(row))
        return FakeResponse(inserted)

    def _execute_upsert(self, rows):
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        key = self._opts.get("on_conflict") or "id"
        written = []
        for item in payload:
            row = self._prepare(item)
            existing = next((r for r in rows if r.get(key) == row.get(key)), None)
            if existing is not None:
                if self._opts.get("ignore_duplicates"):
                    continue
                existing.clear()
                existing.update(row)
            else:
                rows.append(row)
            written.append(dict(row))
        return FakeResponse(written)

    def _execute_delete(self, rows):
        removed = [r for r in rows if self._matches(r)]
        rows[:] = [r for r in rows if not self._matches(r)]
        return FakeResponse([dict(r) for r in removed])


class FakeTable:
    def __init__(self, client: "FakeSupabase", name: str):
        self._client = client
        self._name = name

    def select(self, *fields, **kwargs):
        return FakeQuery(self._client, self._name, "select")

    def insert(self, payload, **kwargs):
        return FakeQuery(self._client, self._name, "insert", payload, **kwargs)

    def upsert(self, payload, **kwargs):
        return FakeQuery(self._client, self._name, "upsert", payload, **kwargs)

    def delete(self, **kwargs):
        return FakeQuery(self._client, self._name, "delete")


class FakeSupabase:
    """In-memory stand-in for a supabase ``Client``.

    ``tables`` holds the rows, ``calls`` records every executed query and
    ``fail_when`` injects errors for matching (table, op, payload).
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.failures: List[tuple] = []
        self.unique: Dict[str, tuple] = {"users": ("line_username",)}
        self.on_execute: Optional[Callable] = None

    def table(self, name: str) -> FakeTable:
        return FakeTable(self, name)

    def fail_when(
        self,
        table: str,
        op: str,
        predicate: Callable[[Any], bool] = lambda payload: True,
        error: Optional[Exception] = None,
    ):
        if error is None:
            error = APIError({"code": "XX000", "message": "injected failure", "details": None, "hint": None})
        self.failures.append((table, op, predicate, error))

    def calls_for(self, table: str, op: Optional[str] = None) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["table"] == table and (op is None or c["op"] == op)]


@pytest.fixture
def fake_client():
    return FakeSupabase()


@pytest.fixture
def settings(tmp_path):
    """Settings with the remote enabled."""
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        local_mode=False,
        data_dir=tmp_path / "data",
        reload_delay=0.01,
    )


@pytest.fixture
def local_settings(tmp_path):
    """Settings in local-only mode."""
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        local_mode=True,
        data_dir=tmp_path / "data",
        reload_delay=0.01,
    )


@pytest.fixture
def store(settings):
    return LocalStore(settings.db_path)


@pytest.fixture
def gateway(fake_client):
    return RemoteGateway(fake_client)


@pytest.fixture
def resolver(settings, gateway):
    return IdentityResolver(settings, gateway)


@pytest.fixture
def k(settings, fake_client, store):
    """Kanjou instance wired to the fake Supabase client."""
    return Kanjou(settings=settings, client=fake_client, store=store)


@pytest.fixture
def local_k(local_settings, fake_client):
    """Kanjou instance in local-only mode."""
    return Kanjou(settings=local_settings, client=fake_client)

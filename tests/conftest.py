"""Pytest configuration and fixtures.

The repositories only need ``conn.cursor()``, ``commit()`` and ``rollback()``
plus the DB-API cursor basics, so an in-memory fake stands in for psycopg2.
"""

from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

import psycopg2.extras
import pytest

CUSTOMER_ID = UUID("ec617965-88b4-4721-8158-ee36c38e4db3")
READING_ID = UUID("5f1c2a8e-3d4b-4c6a-9e7f-0a1b2c3d4e5f")

READING_RESULT_COLUMNS = [
    "reading_id", "comment", "date_of_reading", "kind_of_meter", "meter_count",
    "meter_id", "substitute", "customer_id", "first_name", "last_name",
    "birth_date", "gender",
]


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn
        self.description: Optional[List[tuple]] = None
        self.rowcount = -1
        self._rows: List[tuple] = []

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        self.conn.executed.append((sql, list(params) if params is not None else None))
        if self.conn.errors:
            error = self.conn.errors.pop(0)
            if error is not None:
                raise error
        self.rowcount = self.conn.rowcounts.pop(0) if self.conn.rowcounts else 1
        if self.conn.results:
            columns, rows = self.conn.results.pop(0)
            self.description = [(name,) for name in columns]
            self._rows = list(rows)
        else:
            self.description = None
            self._rows = []

    def fetchone(self) -> Optional[tuple]:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> List[tuple]:
        rows, self._rows = self._rows, []
        return rows


class FakeConnection:
    """Queue ``results`` (columns, rows) / ``rowcounts`` / ``errors`` per execute()."""

    def __init__(self, results=None, rowcounts=None, errors=None) -> None:
        self.results: List[tuple] = list(results or [])
        self.rowcounts: List[int] = list(rowcounts or [])
        self.errors: List[Optional[Exception]] = list(errors or [])
        self.executed: List[tuple] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


def reading_result_row(**overrides: Any) -> Dict[str, Any]:
    row = {
        "reading_id": READING_ID,
        "comment": "Ablesung",
        "date_of_reading": date(2024, 1, 1),
        "kind_of_meter": "STROM",
        "meter_count": 123.45,
        "meter_id": "M-42",
        "substitute": False,
        "customer_id": CUSTOMER_ID,
        "first_name": "Hans",
        "last_name": "Schmidt",
        "birth_date": None,
        "gender": "M",
    }
    row.update(overrides)
    return row


def as_result(rows: List[Dict[str, Any]], columns: List[str] = READING_RESULT_COLUMNS) -> tuple:
    """Turn row dicts into a (columns, tuples) entry for FakeConnection.results."""
    return columns, [tuple(r[c] for c in columns) for r in rows]


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def execute_values_calls(monkeypatch) -> List[tuple]:
    """Replace psycopg2.extras.execute_values; each call affects len(page) rows."""
    calls: List[tuple] = []

    def fake_execute_values(cur, sql, argslist, template=None, page_size=100, fetch=False):
        rows = list(argslist)
        calls.append((sql, rows, page_size))
        cur.conn.executed.append((sql, rows))
        if cur.conn.errors:
            error = cur.conn.errors.pop(0)
            if error is not None:
                raise error
        cur.rowcount = len(rows)

    monkeypatch.setattr(psycopg2.extras, "execute_values", fake_execute_values)
    return calls


@pytest.fixture
def patch_connection(monkeypatch):
    """Route readings_api.get_connection to a FakeConnection; returns a setter."""
    import readings_api

    holder: Dict[str, FakeConnection] = {"conn": FakeConnection()}

    @contextmanager
    def fake_get_connection():
        yield holder["conn"]

    monkeypatch.setattr(readings_api, "get_connection", fake_get_connection)

    def use(conn: FakeConnection) -> FakeConnection:
        holder["conn"] = conn
        return conn

    return use

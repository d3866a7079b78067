"""Shared fixtures: an in-memory recording DataAccess and sample datasets."""

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from itam_backup.tables import RESTORE_ORDER

# Foreign keys the fake checks on write: table -> [(column, parent table)].
FOREIGN_KEYS: dict[str, list[tuple[str, str]]] = {
    "users": [("department_id", "departments")],
    "assets": [("department_id", "departments"), ("assigned_to", "users")],
    "issues": [("asset_id", "assets"), ("reported_by", "users")],
    "asset_requests": [("requested_by", "users")],
    "notifications": [("user_id", "users")],
    "user_notification_preferences": [("user_id", "users")],
}


class RecordingDataAccess:
    """In-memory ``DataAccess`` that records every call in order.

    Attributes:
        rows: table -> {id: row}.
        calls: ``(operation, table)`` tuples in call order.
        fk_violations: Rows written before a referenced parent row existed.
        failures: ``(operation, table)`` -> exception to raise.
        delays: ``(operation, table)`` -> seconds to sleep before answering.
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.rows: dict[str, dict[Any, dict[str, Any]]] = {t: {} for t in RESTORE_ORDER}
        for table, rows in (tables or {}).items():
            for row in rows:
                self.rows[table][row["id"]] = dict(row)
        self.calls: list[tuple[str, str]] = []
        self.fk_violations: list[tuple[str, Any]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.delays: dict[tuple[str, str], float] = {}
        self.closed = False

    async def _enter(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        delay = self.delays.get((operation, table))
        if delay:
            await asyncio.sleep(delay)
        error = self.failures.get((operation, table))
        if error is not None:
            raise error

    async def read_all(self, table: str) -> list[dict[str, Any]]:
        await self._enter("read", table)
        return [dict(r) for r in self.rows[table].values()]

    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> int:
        await self._enter("upsert", table)
        for row in rows:
            for column, parent in FOREIGN_KEYS.get(table, []):
                ref = row.get(column)
                if ref is not None and ref not in self.rows[parent]:
                    self.fk_violations.append((table, row["id"]))
            self.rows[table][row["id"]] = dict(row)
        return len(rows)

    async def delete_all(self, table: str) -> None:
        await self._enter("delete", table)
        self.rows[table] = {}

    async def close(self) -> None:
        self.closed = True

    def snapshot(self) -> dict[str, dict[Any, dict[str, Any]]]:
        return {t: {k: dict(v) for k, v in rows.items()} for t, rows in self.rows.items()}

    def tables_called(self, operation: str) -> list[str]:
        return [t for op, t in self.calls if op == operation]


def minimal_tables() -> dict[str, list[dict[str, Any]]]:
    """One department and one user, everything else empty."""
    return {
        "departments": [{"id": "d1", "name": "IT"}],
        "users": [{"id": "u1", "department_id": "d1"}],
        "assets": [],
        "issues": [],
        "asset_requests": [],
        "notifications": [],
        "user_notification_preferences": [],
    }


def full_tables() -> dict[str, list[dict[str, Any]]]:
    """A small but complete dataset touching every table."""
    return {
        "departments": [
            {"id": "d1", "name": "IT"},
            {"id": "d2", "name": "Finance"},
        ],
        "users": [
            {"id": "u1", "department_id": "d1", "email": "admin@example.com", "role": "admin"},
            {"id": "u2", "department_id": "d2", "email": "officer@example.com", "role": "department_officer"},
            {"id": "u3", "department_id": "d2", "email": "user@example.com", "role": "user"},
        ],
        "assets": [
            {"id": "a1", "name": "Laptop", "department_id": "d1", "assigned_to": "u1"},
            {"id": "a2", "name": "Printer", "department_id": "d2", "assigned_to": None},
        ],
        "issues": [{"id": "i1", "asset_id": "a1", "reported_by": "u3", "status": "open"}],
        "asset_requests": [{"id": "r1", "requested_by": "u3", "status": "pending"}],
        "notifications": [{"id": "n1", "user_id": "u1", "message": "Backup done"}],
        "user_notification_preferences": [{"id": "p1", "user_id": "u1", "email": True}],
    }


def backup_payload(tables: dict[str, list[dict[str, Any]]] | None = None, **overrides: Any) -> dict:
    """A wire-format backup dict."""
    payload = {
        "timestamp": "2026-01-15T02:00:00+00:00",
        "version": "1.0.0",
        "name": "Test Backup",
        "description": "fixture",
        "tables": tables if tables is not None else full_tables(),
        "metadata": {"totalAssets": 2, "totalUsers": 3, "totalIssues": 1, "backupSize": 0},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 15, 2, 0, 30, tzinfo=timezone.utc)


@pytest.fixture
def source() -> RecordingDataAccess:
    return RecordingDataAccess(full_tables())


@pytest.fixture
def target() -> RecordingDataAccess:
    return RecordingDataAccess()


@pytest.fixture
def dataset() -> dict[str, list[dict[str, Any]]]:
    return full_tables()


@pytest.fixture
def make_access():
    """Factory for ``RecordingDataAccess`` instances."""
    return RecordingDataAccess


@pytest.fixture
def make_payload():
    """Factory for wire-format backup dicts."""
    return backup_payload

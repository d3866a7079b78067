"""Tests for the PostgreSQL and Supabase data access adapters."""

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest

from itam_backup.adapters.base import KNOWN_TABLES, check_table
from itam_backup.adapters.postgres import (
    AsyncPostgresAdapter,
    build_upsert_sql,
    create_async_engine_pooled,
    normalize_url,
)
from itam_backup.adapters.supabase import AsyncSupabaseAdapter


def _async_cm(value):
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=value)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


# ============================================================================
# Table name guard
# ============================================================================


class TestCheckTable:
    def test_tracked_tables_accepted(self):
        for table in ("departments", "user_notification_preferences", "backups"):
            assert check_table(table) == table

    def test_unknown_table_rejected(self):
        with pytest.raises(ValueError, match="Unknown table"):
            check_table("users; DROP TABLE users")

    def test_known_tables(self):
        assert len(KNOWN_TABLES) == 8


# ============================================================================
# PostgreSQL
# ============================================================================


class TestNormalizeUrl:
    def test_postgresql(self):
        assert normalize_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_postgres_alias(self):
        assert normalize_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_asyncpg_unchanged(self):
        assert normalize_url("postgresql+asyncpg://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"


class TestBuildUpsertSql:
    def test_update_on_conflict(self):
        sql = build_upsert_sql("assets", ["id", "name", "department_id"])
        assert sql == (
            "INSERT INTO assets (id, name, department_id) "
            "SELECT id, name, department_id FROM jsonb_populate_recordset(NULL::assets, CAST(:rows AS jsonb)) "
            "ON CONFLICT (id) DO UPDATE SET name = EXCLUDED.name, department_id = EXCLUDED.department_id"
        )

    def test_id_only_does_nothing_on_conflict(self):
        sql = build_upsert_sql("departments", ["id"])
        assert sql.endswith("ON CONFLICT (id) DO NOTHING")

    def test_rejects_injected_column(self):
        with pytest.raises(ValueError, match="Invalid column name"):
            build_upsert_sql("users", ["id", "name) SELECT 1; DROP TABLE users; --"])

    def test_rejects_unknown_table(self):
        with pytest.raises(ValueError, match="Unknown table"):
            build_upsert_sql("pg_authid", ["id"])


class TestCreateAsyncEnginePooled:
    def test_pool_defaults_and_overrides(self):
        with patch("itam_backup.adapters.postgres.create_async_engine") as mock_create:
            mock_create.return_value = MagicMock()
            create_async_engine_pooled("postgresql+asyncpg://u:p@h/db", pool_size=20)
            _, kwargs = mock_create.call_args
            assert kwargs["pool_size"] == 20
            assert kwargs["max_overflow"] == 10
            assert kwargs["pool_pre_ping"] is True


class TestAsyncPostgresAdapter:
    """AsyncPostgresAdapter against a mocked engine."""

    @pytest.fixture
    def adapter(self):
        with patch("itam_backup.adapters.postgres.create_async_engine_pooled") as mock_create:
            mock_create.return_value = MagicMock()
            adapter = AsyncPostgresAdapter("postgres://u:p@localhost/itam")
            assert mock_create.call_args[0][0] == "postgresql+asyncpg://u:p@localhost/itam"
        return adapter

    async def test_read_all_serializes_values(self, adapter):
        uid = UUID("12345678-1234-5678-1234-567812345678")
        created = datetime(2026, 1, 15, 2, 0, tzinfo=timezone.utc)
        result = MagicMock()
        result.keys.return_value = ["id", "created_at", "cost"]
        result.fetchall.return_value = [(uid, created, Decimal("12.50"))]
        conn = AsyncMock()
        conn.execute.return_value = result
        adapter._engine.connect.return_value = _async_cm(conn)

        rows = await adapter.read_all("assets")

        assert rows == [{"id": str(uid), "created_at": created.isoformat(), "cost": 12.5}]
        assert str(conn.execute.call_args[0][0]) == "SELECT * FROM assets"

    async def test_upsert_groups_rows_by_shape(self, adapter):
        conn = AsyncMock()
        adapter._engine.begin.return_value = _async_cm(conn)
        rows = [
            {"id": "a1", "name": "Laptop"},
            {"id": "a2", "name": "Printer"},
            {"id": "a3", "name": "Dock", "specifications": {"ports": 4}},
        ]

        written = await adapter.upsert("assets", rows)

        assert written == 3
        assert conn.execute.call_count == 2
        first_sql, first_params = conn.execute.call_args_list[0][0]
        assert "INSERT INTO assets (id, name)" in str(first_sql)
        assert json.loads(first_params["rows"]) == rows[:2]
        second_params = conn.execute.call_args_list[1][0][1]
        assert json.loads(second_params["rows"]) == [rows[2]]

    async def test_upsert_rejects_injected_column_before_writing(self, adapter):
        rows = [{"id": "u1", "name) SELECT 1; DROP TABLE users; --": "x"}]

        with pytest.raises(ValueError, match="Invalid column name"):
            await adapter.upsert("users", rows)

        adapter._engine.begin.assert_not_called()

    async def test_upsert_empty_is_noop(self, adapter):
        assert await adapter.upsert("assets", []) == 0
        adapter._engine.begin.assert_not_called()

    async def test_upsert_rejects_unknown_table(self, adapter):
        with pytest.raises(ValueError):
            await adapter.upsert("pg_catalog.pg_user", [{"id": 1}])

    async def test_delete_all(self, adapter):
        conn = AsyncMock()
        adapter._engine.begin.return_value = _async_cm(conn)

        await adapter.delete_all("issues")

        assert str(conn.execute.call_args[0][0]) == "DELETE FROM issues"

    async def test_connection_check(self, adapter):
        result = MagicMock()
        result.scalar.return_value = 1
        conn = AsyncMock()
        conn.execute.return_value = result
        adapter._engine.connect.return_value = _async_cm(conn)

        assert await adapter.test_connection() is True

    async def test_close_disposes_engine(self, adapter):
        adapter._engine.dispose = AsyncMock()
        await adapter.close()
        adapter._engine.dispose.assert_awaited_once()


# ============================================================================
# Supabase
# ============================================================================


def _mock_supabase_client(data):
    builder = MagicMock()
    for method in ("select", "upsert", "delete", "is_"):
        getattr(builder, method).return_value = builder
    builder.not_ = builder
    builder.execute = AsyncMock(return_value=MagicMock(data=data))
    client = MagicMock()
    client.table.return_value = builder
    client.aclose = AsyncMock()
    return client, builder


class TestAsyncSupabaseAdapter:
    def test_client_is_lazy(self):
        adapter = AsyncSupabaseAdapter(url="https://x.supabase.co", key="k")
        assert adapter._client is None
        assert isinstance(adapter._lock, asyncio.Lock)

    async def test_client_created_once(self):
        client, _ = _mock_supabase_client([])
        adapter = AsyncSupabaseAdapter(url="https://x.supabase.co", key="k")

        with patch(
            "itam_backup.adapters.supabase.acreate_client", new=AsyncMock(return_value=client)
        ) as mock_create:
            results = await asyncio.gather(*(adapter.get_client() for _ in range(5)))

        assert all(r is client for r in results)
        mock_create.assert_awaited_once_with("https://x.supabase.co", "k")

    async def test_read_all(self):
        client, builder = _mock_supabase_client([{"id": "d1"}])
        adapter = AsyncSupabaseAdapter(url="https://x.supabase.co", key="k")
        adapter._client = client

        assert await adapter.read_all("departments") == [{"id": "d1"}]
        client.table.assert_called_once_with("departments")
        builder.select.assert_called_once_with("*")

    async def test_upsert_on_id(self):
        rows = [{"id": "u1"}, {"id": "u2"}]
        client, builder = _mock_supabase_client(rows)
        adapter = AsyncSupabaseAdapter(url="https://x.supabase.co", key="k")
        adapter._client = client

        assert await adapter.upsert("users", rows) == 2
        builder.upsert.assert_called_once_with(rows, on_conflict="id")

    async def test_delete_all_matches_every_row(self):
        client, builder = _mock_supabase_client([])
        adapter = AsyncSupabaseAdapter(url="https://x.supabase.co", key="k")
        adapter._client = client

        await adapter.delete_all("notifications")

        builder.delete.assert_called_once_with()
        builder.is_.assert_called_once_with("id", "null")

    async def test_close(self):
        client, _ = _mock_supabase_client([])
        adapter = AsyncSupabaseAdapter(url="https://x.supabase.co", key="k")
        adapter._client = client

        await adapter.close()

        client.aclose.assert_awaited_once()
        assert adapter._client is None

    async def test_close_without_client(self):
        adapter = AsyncSupabaseAdapter(url="https://x.supabase.co", key="k")
        await adapter.close()
        assert adapter._client is None

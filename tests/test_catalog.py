"""Tests for the backup catalogs (local directory and Supabase table)."""

import asyncio
import json
import multiprocessing
import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from itam_backup.backup.models import BackupDocument, BackupRecord
from itam_backup.backup.restore import parse_backup
from itam_backup.catalog.base import download_filename
from itam_backup.catalog.local import INDEX_FILE, LocalCatalog
from itam_backup.catalog.supabase import SupabaseCatalog
from itam_backup.errors import BackupNotFoundError


def _document(make_payload, name="Test Backup", timestamp="2026-01-15T02:00:00+00:00"):
    return parse_backup(make_payload(name=name, timestamp=timestamp))


def _store_many(directory, count):
    async def run():
        catalog = LocalCatalog(directory)
        for i in range(count):
            document = BackupDocument(timestamp="2026-01-15T02:00:00+00:00", name=f"{os.getpid()}-{i}")
            await catalog.store(document)

    asyncio.run(run())


# ------------------------------------------------------------------
# download_filename
# ------------------------------------------------------------------


class TestDownloadFilename:
    def test_name_and_date(self, make_payload):
        assert download_filename(_document(make_payload)) == "Test Backup-2026-01-15.json"

    def test_unnamed_backup(self, make_payload):
        document = parse_backup(make_payload(name=None))
        assert download_filename(document) == "backup-2026-01-15.json"


# ------------------------------------------------------------------
# LocalCatalog
# ------------------------------------------------------------------


class TestLocalCatalog:
    """LocalCatalog stores documents under a directory with an index file."""

    @pytest.fixture
    def catalog(self, tmp_path):
        return LocalCatalog(tmp_path / "backups")

    async def test_store_then_get_round_trips(self, catalog, make_payload):
        document = _document(make_payload)
        record = await catalog.store(document)

        stored = await catalog.get(record.id)
        assert stored == document
        assert stored.to_wire() == document.to_wire()

    async def test_store_writes_index_and_document(self, catalog, make_payload):
        record = await catalog.store(_document(make_payload), created_by="admin@example.com")

        index = json.loads((catalog.directory / INDEX_FILE).read_text())
        assert [r["id"] for r in index["backups"]] == [record.id]
        assert (catalog.directory / record.document_ref).exists()
        assert record.created_by == "admin@example.com"
        assert record.name == "Test Backup"
        assert record.metadata.total_users == 3

    async def test_list_newest_first(self, catalog, make_payload):
        await catalog.store(_document(make_payload, "old", "2026-01-01T00:00:00+00:00"))
        await catalog.store(_document(make_payload, "new", "2026-03-01T00:00:00+00:00"))
        await catalog.store(_document(make_payload, "mid", "2026-02-01T00:00:00Z"))

        assert [r.name for r in await catalog.list()] == ["new", "mid", "old"]

    async def test_list_empty(self, catalog):
        assert await catalog.list() == []

    async def test_delete_removes_entry_and_document(self, catalog, make_payload):
        record = await catalog.store(_document(make_payload))
        path = catalog.directory / record.document_ref

        await catalog.delete(record.id)

        assert await catalog.list() == []
        assert not path.exists()
        with pytest.raises(BackupNotFoundError):
            await catalog.get(record.id)

    async def test_delete_unknown_raises(self, catalog):
        with pytest.raises(BackupNotFoundError):
            await catalog.delete("missing")

    async def test_get_unknown_raises(self, catalog):
        with pytest.raises(BackupNotFoundError):
            await catalog.get("missing")

    async def test_concurrent_stores_keep_every_entry(self, catalog, make_payload):
        records = await asyncio.gather(
            *(catalog.store(_document(make_payload, f"b{i}")) for i in range(10))
        )

        listed = {r.id for r in await catalog.list()}
        assert listed == {r.id for r in records}

    @pytest.mark.skipif(sys.platform == "win32", reason="flock is POSIX only")
    def test_stores_from_separate_processes_keep_every_entry(self, tmp_path):
        directory = tmp_path / "backups"
        ctx = multiprocessing.get_context("fork")
        workers = [ctx.Process(target=_store_many, args=(directory, 40)) for _ in range(2)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=60)

        assert [worker.exitcode for worker in workers] == [0, 0]
        index = json.loads((directory / INDEX_FILE).read_text())
        documents = [p for p in directory.glob("*.json") if p.name != INDEX_FILE]
        assert len(index["backups"]) == 80
        assert len(documents) == 80
        assert {r["document_ref"] for r in index["backups"]} == {p.name for p in documents}

    async def test_prune_only_removes_old_scheduled_backups(self, catalog, make_payload):
        old = await catalog.store(
            _document(make_payload, "old", "2026-01-01T02:00:00+00:00"), created_by="schedule:s1"
        )
        recent = await catalog.store(
            _document(make_payload, "recent", "2026-01-20T02:00:00+00:00"), created_by="schedule:s1"
        )
        other = await catalog.store(
            _document(make_payload, "other", "2026-01-01T02:00:00+00:00"), created_by="schedule:s2"
        )
        manual = await catalog.store(
            _document(make_payload, "manual", "2026-01-01T02:00:00+00:00"), created_by="admin"
        )

        cutoff = datetime(2026, 1, 10, tzinfo=timezone.utc)
        removed = await catalog.prune("s1", cutoff)

        assert removed == [old.id]
        remaining = {r.id for r in await catalog.list()}
        assert remaining == {recent.id, other.id, manual.id}
        assert not (catalog.directory / old.document_ref).exists()

    async def test_prune_nothing_expired(self, catalog, make_payload):
        await catalog.store(_document(make_payload), created_by="schedule:s1")
        cutoff = datetime(2026, 1, 1, tzinfo=timezone.utc) - timedelta(days=30)
        assert await catalog.prune("s1", cutoff) == []


class TestBackupRecord:
    def test_schedule_id_from_creator(self):
        record = BackupRecord(
            id="b1", name="n", timestamp="2026-01-01T00:00:00+00:00",
            document_ref="b1.json", created_by="schedule:schedule_abc",
        )
        assert record.schedule_id == "schedule_abc"

    def test_manual_backup_has_no_schedule(self):
        record = BackupRecord(
            id="b1", name="n", timestamp="2026-01-01T00:00:00+00:00",
            document_ref="b1.json", created_by="admin@example.com",
        )
        assert record.schedule_id is None


# ------------------------------------------------------------------
# SupabaseCatalog
# ------------------------------------------------------------------


def _mock_client(data):
    """Client whose query builder chain ends in ``execute()`` returning ``data``."""
    builder = MagicMock()
    for method in ("select", "insert", "delete", "eq", "lt", "order"):
        getattr(builder, method).return_value = builder
    builder.execute = AsyncMock(return_value=MagicMock(data=data))
    client = MagicMock()
    client.table.return_value = builder
    return client, builder


def _catalog(client):
    adapter = MagicMock()
    adapter.get_client = AsyncMock(return_value=client)
    return SupabaseCatalog(adapter)


class TestSupabaseCatalog:
    """SupabaseCatalog keeps the document in the backup_data column."""

    async def test_store_inserts_document(self, make_payload):
        document = _document(make_payload)
        row = {
            "id": "b1",
            "name": document.name,
            "description": document.description,
            "timestamp": document.timestamp,
            "version": document.schema_version,
            "metadata": document.metadata.model_dump(mode="json", by_alias=True),
            "created_by": "schedule:s1",
        }
        client, builder = _mock_client([row])

        record = await _catalog(client).store(document, created_by="schedule:s1")

        client.table.assert_called_with("backups")
        inserted = builder.insert.call_args[0][0]
        assert inserted["backup_data"] == document.to_wire()
        assert inserted["created_by"] == "schedule:s1"
        assert record.id == "b1"
        assert record.document_ref == "backups/b1"
        assert record.schedule_id == "s1"

    async def test_list_orders_by_timestamp_desc(self):
        client, builder = _mock_client([
            {"id": "b2", "name": "new", "timestamp": "2026-02-01T00:00:00+00:00"},
            {"id": "b1", "name": "old", "timestamp": "2026-01-01T00:00:00+00:00"},
        ])

        records = await _catalog(client).list()

        builder.order.assert_called_once_with("timestamp", desc=True)
        assert [r.id for r in records] == ["b2", "b1"]

    async def test_get_returns_document(self, make_payload):
        payload = make_payload()
        client, builder = _mock_client([{"backup_data": payload}])

        document = await _catalog(client).get("b1")

        builder.eq.assert_called_once_with("id", "b1")
        assert document.name == "Test Backup"

    async def test_get_missing_raises(self):
        client, _ = _mock_client([])
        with pytest.raises(BackupNotFoundError):
            await _catalog(client).get("missing")

    async def test_delete_missing_raises(self):
        client, _ = _mock_client([])
        with pytest.raises(BackupNotFoundError):
            await _catalog(client).delete("missing")

    async def test_prune_filters_by_creator_and_age(self):
        client, builder = _mock_client([{"id": "b1"}, {"id": "b2"}])
        cutoff = datetime(2026, 1, 10, tzinfo=timezone.utc)

        removed = await _catalog(client).prune("s1", cutoff)

        builder.eq.assert_called_once_with("created_by", "schedule:s1")
        builder.lt.assert_called_once_with("timestamp", cutoff.isoformat())
        assert removed == ["b1", "b2"]

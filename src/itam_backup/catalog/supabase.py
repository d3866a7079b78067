"""Backup catalog stored in the Supabase ``backups`` table.

Each row holds the catalog fields plus the whole document in the
``backup_data`` JSON column, so deleting the row deletes the document.

Usage:
    from itam_backup.adapters.supabase import AsyncSupabaseAdapter
    from itam_backup.catalog.supabase import SupabaseCatalog

    catalog = SupabaseCatalog(AsyncSupabaseAdapter(url, key))
    records = await catalog.list()
"""

from __future__ import annotations

import logging
from datetime import datetime

from itam_backup.adapters.base import CATALOG_TABLE
from itam_backup.adapters.supabase import AsyncSupabaseAdapter
from itam_backup.backup.models import SCHEDULE_CREATOR_PREFIX, BackupDocument, BackupRecord
from itam_backup.errors import BackupNotFoundError

logger = logging.getLogger(__name__)

RECORD_COLUMNS = "id, name, description, timestamp, version, metadata, created_by"


def _to_record(row: dict) -> BackupRecord:
    return BackupRecord.model_validate({**row, "document_ref": f"{CATALOG_TABLE}/{row['id']}"})


class SupabaseCatalog:
    """``BackupCatalog`` over the Supabase ``backups`` table.

    Args:
        adapter: Supabase adapter whose client is shared with the catalog.
    """

    def __init__(self, adapter: AsyncSupabaseAdapter) -> None:
        self._adapter = adapter

    async def store(self, document: BackupDocument, created_by: str = "system") -> BackupRecord:
        client = await self._adapter.get_client()
        result = await (
            client.table(CATALOG_TABLE)
            .insert(
                {
                    "name": document.name,
                    "description": document.description,
                    "timestamp": document.timestamp,
                    "version": document.schema_version,
                    "metadata": document.metadata.model_dump(mode="json", by_alias=True),
                    "backup_data": document.to_wire(),
                    "created_by": created_by,
                }
            )
            .execute()
        )
        record = _to_record(result.data[0])
        logger.info(f"Stored backup '{record.name}' as {record.id}")
        return record

    async def list(self) -> list[BackupRecord]:
        client = await self._adapter.get_client()
        result = await (
            client.table(CATALOG_TABLE)
            .select(RECORD_COLUMNS)
            .order("timestamp", desc=True)
            .execute()
        )
        return [_to_record(row) for row in result.data or []]

    async def get(self, backup_id: str) -> BackupDocument:
        client = await self._adapter.get_client()
        result = await (
            client.table(CATALOG_TABLE)
            .select("backup_data")
            .eq("id", backup_id)
            .execute()
        )
        if not result.data or not result.data[0].get("backup_data"):
            raise BackupNotFoundError(f"Backup not found: {backup_id}")
        return BackupDocument.model_validate(result.data[0]["backup_data"])

    async def delete(self, backup_id: str) -> None:
        client = await self._adapter.get_client()
        result = await client.table(CATALOG_TABLE).delete().eq("id", backup_id).execute()
        if not result.data:
            raise BackupNotFoundError(f"Backup not found: {backup_id}")
        logger.info(f"Deleted backup {backup_id}")

    async def prune(self, schedule_id: str, older_than: datetime) -> list[str]:
        client = await self._adapter.get_client()
        result = await (
            client.table(CATALOG_TABLE)
            .delete()
            .eq("created_by", f"{SCHEDULE_CREATOR_PREFIX}{schedule_id}")
            .lt("timestamp", older_than.isoformat())
            .execute()
        )
        return [row["id"] for row in result.data or []]

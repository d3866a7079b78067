"""File-based backup catalog.

Documents are written as ``<id>.json`` under a directory (``./backups/``
by default) and an ``index.json`` file holds the catalog entries.  Index
updates hold an ``asyncio.Lock`` plus an exclusive ``flock`` on
``.index.lock``, and the index is replaced atomically, so concurrent
stores and deletes from any number of processes never lose entries.

Usage:
    from itam_backup.catalog.local import LocalCatalog

    catalog = LocalCatalog("backups")
    record = await catalog.store(document)
    same = await catalog.get(record.id)
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path

from itam_backup.backup.models import BackupDocument, BackupRecord
from itam_backup.errors import BackupNotFoundError
from itam_backup.fileio import file_lock, parse_timestamp, write_atomic

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
INDEX_LOCK_FILE = ".index.lock"


class LocalCatalog:
    """``BackupCatalog`` stored in a local directory.

    Args:
        directory: Where documents and the index live.  Created on first use.
    """

    def __init__(self, directory: str | Path = "backups") -> None:
        self._dir = Path(directory)
        self._lock = asyncio.Lock()

    @property
    def directory(self) -> Path:
        return self._dir

    # ------------------------------------------------------------------
    # Index helpers (call with ``_locked`` held)
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        """Hold the in-process lock, then the cross-process index lock."""
        async with self._lock:
            with file_lock(self._dir / INDEX_LOCK_FILE):
                yield

    def _load_index(self) -> list[BackupRecord]:
        index_path = self._dir / INDEX_FILE
        if not index_path.exists():
            return []
        with open(index_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [BackupRecord.model_validate(r) for r in data.get("backups", [])]

    def _save_index(self, records: list[BackupRecord]) -> None:
        payload = {"backups": [r.model_dump(mode="json", by_alias=True) for r in records]}
        write_atomic(self._dir / INDEX_FILE, json.dumps(payload, indent=2))

    # ------------------------------------------------------------------
    # Catalog operations
    # ------------------------------------------------------------------

    async def store(self, document: BackupDocument, created_by: str = "system") -> BackupRecord:
        backup_id = str(uuid.uuid4())
        document_ref = f"{backup_id}.json"
        record = BackupRecord(
            id=backup_id,
            name=document.name or backup_id,
            description=document.description,
            timestamp=document.timestamp,
            schema_version=document.schema_version,
            metadata=document.metadata,
            document_ref=document_ref,
            created_by=created_by,
        )

        async with self._locked():
            self._dir.mkdir(parents=True, exist_ok=True)
            write_atomic(self._dir / document_ref, document.to_json(indent=2))
            records = self._load_index()
            records.append(record)
            self._save_index(records)

        logger.info(f"Stored backup '{record.name}' as {backup_id}")
        return record

    async def list(self) -> list[BackupRecord]:
        async with self._locked():
            records = self._load_index()
        return sorted(records, key=lambda r: parse_timestamp(r.timestamp), reverse=True)

    async def get_record(self, backup_id: str) -> BackupRecord:
        async with self._locked():
            records = self._load_index()
        for record in records:
            if record.id == backup_id:
                return record
        raise BackupNotFoundError(f"Backup not found: {backup_id}")

    async def get(self, backup_id: str) -> BackupDocument:
        record = await self.get_record(backup_id)
        path = self._dir / record.document_ref
        if not path.exists():
            raise BackupNotFoundError(f"Backup document missing: {record.document_ref}")
        with open(path, "r", encoding="utf-8") as f:
            return BackupDocument.model_validate(json.load(f))

    async def delete(self, backup_id: str) -> None:
        async with self._locked():
            records = self._load_index()
            remaining = [r for r in records if r.id != backup_id]
            if len(remaining) == len(records):
                raise BackupNotFoundError(f"Backup not found: {backup_id}")
            removed = next(r for r in records if r.id == backup_id)
            self._save_index(remaining)
            (self._dir / removed.document_ref).unlink(missing_ok=True)

        logger.info(f"Deleted backup {backup_id}")

    async def prune(self, schedule_id: str, older_than: datetime) -> list[str]:
        async with self._locked():
            records = self._load_index()
            expired = [
                r for r in records
                if r.schedule_id == schedule_id and parse_timestamp(r.timestamp) < older_than
            ]
            if not expired:
                return []
            expired_ids = {r.id for r in expired}
            self._save_index([r for r in records if r.id not in expired_ids])
            for record in expired:
                (self._dir / record.document_ref).unlink(missing_ok=True)

        return [r.id for r in expired]

"""Backup catalog protocol.

The catalog is the durable index of stored snapshots: every entry is a
``BackupRecord`` that references exactly one ``BackupDocument``.  Deleting
a record removes its document too.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from itam_backup.backup.models import BackupDocument, BackupRecord


def download_filename(document: BackupDocument) -> str:
    """``<name>-<YYYY-MM-DD>.json`` for a downloaded backup."""
    return f"{document.name or 'backup'}-{document.timestamp[:10]}.json"


class BackupCatalog(Protocol):
    """Persistent store of backup documents and their catalog entries."""

    async def store(self, document: BackupDocument, created_by: str = "system") -> BackupRecord:
        """Persist ``document`` and return its new catalog entry."""
        ...

    async def list(self) -> list[BackupRecord]:
        """All catalog entries, newest first."""
        ...

    async def get(self, backup_id: str) -> BackupDocument:
        """Return the stored document.

        Raises:
            BackupNotFoundError: If no such entry exists.
        """
        ...

    async def delete(self, backup_id: str) -> None:
        """Remove the entry and its document.

        Raises:
            BackupNotFoundError: If no such entry exists.
        """
        ...

    async def prune(self, schedule_id: str, older_than: datetime) -> list[str]:
        """Delete entries produced by ``schedule_id`` older than ``older_than``.

        Returns:
            Ids of the deleted entries.
        """
        ...

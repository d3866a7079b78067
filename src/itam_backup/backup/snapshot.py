"""Snapshot builder: read all tracked tables into one ``BackupDocument``.

All seven reads are issued concurrently.  If any of them fails (or
times out) the whole snapshot fails with ``SnapshotError`` -- a partial
document is never assembled, which keeps the export logically atomic
even though the store offers no cross-table transaction.

Usage:
    from itam_backup.backup.snapshot import create_snapshot

    document = await create_snapshot(adapter, name="Before migration")
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from itam_backup.adapters.base import DataAccess
from itam_backup.backup.models import (
    RESTORE_ORDER,
    SCHEMA_VERSION,
    BackupDocument,
    BackupMetadata,
    BackupTables,
)
from itam_backup.errors import SnapshotError, TableFailure

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 60.0


def default_backup_name(now: datetime, prefix: str = "Backup") -> str:
    """Generate ``"<prefix> - YYYY-MM-DD HH-MM-SS"``."""
    return f"{prefix} - {now.strftime('%Y-%m-%d')} {now.strftime('%H-%M-%S')}"


async def _read_table(adapter: DataAccess, table: str, timeout: float) -> list[dict[str, Any]]:
    try:
        rows = await asyncio.wait_for(adapter.read_all(table), timeout=timeout)
    except asyncio.TimeoutError:
        raise TimeoutError(f"read timed out after {timeout}s") from None
    return [dict(row) for row in rows or []]


def build_metadata(tables: BackupTables) -> BackupMetadata:
    """Per-table counts plus the dashboard totals (size filled in later)."""
    counts = tables.counts()
    return BackupMetadata(
        total_assets=counts["assets"],
        total_users=counts["users"],
        total_issues=counts["issues"],
        backup_size=0,
        counts_per_table=counts,
    )


async def create_snapshot(
    adapter: DataAccess,
    name: str | None = None,
    description: str | None = None,
    timeout: float = DEFAULT_READ_TIMEOUT,
    now: datetime | None = None,
) -> BackupDocument:
    """Read every tracked table and assemble an immutable backup document.

    Args:
        adapter: Data access capability to read from.
        name: Backup label.  Defaults to ``"Backup - <date> <time>"``.
        description: Optional free-text description.
        timeout: Per-table read deadline in seconds.
        now: Timestamp to stamp the document with (defaults to UTC now).

    Returns:
        The assembled ``BackupDocument``.  ``metadata.backup_size`` is the
        UTF-8 size of the serialized document with a zero size field.

    Raises:
        SnapshotError: If one or more reads failed.  Carries every failure,
            not only the first.
    """
    now = now or datetime.now(timezone.utc)

    results = await asyncio.gather(
        *(_read_table(adapter, table, timeout) for table in RESTORE_ORDER),
        return_exceptions=True,
    )

    failures: list[TableFailure] = []
    rows_by_table: dict[str, list[dict[str, Any]]] = {}
    for table, result in zip(RESTORE_ORDER, results):
        if isinstance(result, Exception):
            failures.append(TableFailure(table=table, error=str(result) or type(result).__name__))
        elif isinstance(result, BaseException):
            raise result
        else:
            rows_by_table[table] = result

    if failures:
        logger.error(
            f"Snapshot aborted, {len(failures)} table read(s) failed: "
            f"{', '.join(f.table for f in failures)}"
        )
        raise SnapshotError(failures)

    tables = BackupTables(**rows_by_table)
    draft = BackupDocument(
        timestamp=now.isoformat(),
        schema_version=SCHEMA_VERSION,
        name=name or default_backup_name(now),
        description=description,
        tables=tables,
        metadata=build_metadata(tables),
    )
    size = len(draft.to_json().encode("utf-8"))
    document = draft.model_copy(
        update={"metadata": draft.metadata.model_copy(update={"backup_size": size})}
    )

    logger.info(
        f"Snapshot '{document.name}' assembled: "
        f"{sum(document.metadata.counts_per_table.values())} rows, {size} bytes"
    )
    return document

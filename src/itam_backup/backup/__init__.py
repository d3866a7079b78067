"""Snapshot and restore of the seven tracked tables.

Usage:
    from itam_backup.backup import create_snapshot, RestoreEngine, parse_backup
    from itam_backup.backup import BackupDocument, RestoreOptions
"""

from itam_backup.backup.models import (
    CLEAR_ORDER,
    RESTORE_ORDER,
    SCHEMA_VERSION,
    BackupDocument,
    BackupMetadata,
    BackupRecord,
    BackupTables,
    RestoreOptions,
    RestoreResult,
    SystemStats,
    TableWrite,
)
from itam_backup.backup.restore import (
    RestoreEngine,
    parse_backup,
    plan_restore,
    validate_backup_data,
)
from itam_backup.backup.snapshot import create_snapshot

__all__ = [
    "CLEAR_ORDER",
    "RESTORE_ORDER",
    "SCHEMA_VERSION",
    "BackupDocument",
    "BackupMetadata",
    "BackupRecord",
    "BackupTables",
    "RestoreEngine",
    "RestoreOptions",
    "RestoreResult",
    "SystemStats",
    "TableWrite",
    "create_snapshot",
    "parse_backup",
    "plan_restore",
    "validate_backup_data",
]

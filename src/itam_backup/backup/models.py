"""Backup document models.

The table order constants from ``itam_backup.tables`` are re-exported here
so callers can import documents and ordering from one place.

Usage:
    from itam_backup.backup.models import BackupDocument, RESTORE_ORDER

    document = BackupDocument.model_validate(json.loads(raw))
    for table in RESTORE_ORDER:
        rows = document.tables.rows(table)
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from itam_backup.tables import (
    CLEAR_ORDER,
    NOTIFICATION_TABLES,
    RESTORE_ORDER,
    USER_TABLES,
)

SCHEMA_VERSION = "1.0.0"

# Scheduled runs record their creator as "schedule:<id>".
SCHEDULE_CREATOR_PREFIX = "schedule:"


class BackupTables(BaseModel):
    """Rows of all seven tracked tables.  A missing table is an empty list.

    Frozen like the document that holds it: fields cannot be reassigned.
    Pydantic does not deep-freeze containers, so the row lists and row
    dicts themselves stay mutable; treat them as read-only and copy rows
    before changing them.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    departments: list[dict[str, Any]] = Field(default_factory=list)
    users: list[dict[str, Any]] = Field(default_factory=list)
    assets: list[dict[str, Any]] = Field(default_factory=list)
    issues: list[dict[str, Any]] = Field(default_factory=list)
    asset_requests: list[dict[str, Any]] = Field(default_factory=list)
    notifications: list[dict[str, Any]] = Field(default_factory=list)
    user_notification_preferences: list[dict[str, Any]] = Field(default_factory=list)

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Return the rows for ``table`` (one of ``RESTORE_ORDER``)."""
        if table not in RESTORE_ORDER:
            raise KeyError(f"Unknown table: {table}")
        return getattr(self, table)

    def counts(self) -> dict[str, int]:
        """Row count per table, in restore order."""
        return {table: len(self.rows(table)) for table in RESTORE_ORDER}


class BackupMetadata(BaseModel):
    """Integrity metadata computed from the rows actually read."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_assets: int = Field(default=0, alias="totalAssets")
    total_users: int = Field(default=0, alias="totalUsers")
    total_issues: int = Field(default=0, alias="totalIssues")
    backup_size: int = Field(default=0, alias="backupSize")
    counts_per_table: dict[str, int] = Field(default_factory=dict, alias="countsPerTable")


class BackupDocument(BaseModel):
    """Immutable point-in-time export of all tracked tables.

    The document, its ``tables`` and its ``metadata`` are frozen models;
    see ``BackupTables`` for the limits on the row containers.

    Serializes to the JSON wire format used for upload and download
    (``version``, ``totalAssets``, ...) via ``to_wire()`` / ``to_json()``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: str
    schema_version: str = Field(default=SCHEMA_VERSION, alias="version")
    name: str | None = None
    description: str | None = None
    tables: BackupTables = Field(default_factory=BackupTables)
    metadata: BackupMetadata = Field(default_factory=BackupMetadata)

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using wire field names."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self, indent: int | None = None) -> str:
        """Serialize to a JSON string using wire field names."""
        return json.dumps(self.to_wire(), indent=indent, default=str)


class BackupRecord(BaseModel):
    """Catalog entry pointing at a stored ``BackupDocument``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str | None = None
    timestamp: str
    schema_version: str = Field(default=SCHEMA_VERSION, alias="version")
    metadata: BackupMetadata = Field(default_factory=BackupMetadata)
    document_ref: str
    created_by: str = "system"

    @property
    def schedule_id(self) -> str | None:
        """Id of the schedule that produced this backup, if any."""
        if self.created_by.startswith(SCHEDULE_CREATOR_PREFIX):
            return self.created_by[len(SCHEDULE_CREATOR_PREFIX):]
        return None


class RestoreOptions(BaseModel):
    """Restore switches.  All default to ``False``."""

    model_config = ConfigDict(populate_by_name=True)

    clear_existing: bool = Field(default=False, alias="clearExisting")
    skip_users: bool = Field(default=False, alias="skipUsers")
    skip_notifications: bool = Field(default=False, alias="skipNotifications")


class TableWrite(BaseModel):
    """One completed restore step."""

    table: str
    rows: int = 0


class RestoreResult(BaseModel):
    """Outcome of a fully completed restore."""

    cleared: list[str] = Field(default_factory=list)
    restored: list[TableWrite] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        """Total number of rows written across all tables."""
        return sum(w.rows for w in self.restored)


class SystemStats(BaseModel):
    """Dashboard counters shown next to the backup list."""

    model_config = ConfigDict(populate_by_name=True)

    total_assets: int = Field(default=0, alias="totalAssets")
    total_users: int = Field(default=0, alias="totalUsers")
    total_issues: int = Field(default=0, alias="totalIssues")
    total_departments: int = Field(default=0, alias="totalDepartments")
    last_backup: str | None = Field(default=None, alias="lastBackup")

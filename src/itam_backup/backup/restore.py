"""Restore engine: validate a backup document and reapply it in FK order.

The restore is an explicit pipeline of named steps.  When
``clear_existing`` is set, clear steps run first in reverse dependency
order; then upsert steps run in forward dependency order.  Steps are
strictly sequential -- a child table is never written before its parent
step completed.  The first failing step aborts the pipeline and raises
``RestoreStepFailure`` carrying the tables that completed before it.
Nothing is rolled back (the store has no multi-table transaction).

Usage:
    from itam_backup.backup.restore import RestoreEngine, parse_backup
    from itam_backup.backup.models import RestoreOptions

    engine = RestoreEngine(adapter)
    document = parse_backup(uploaded_bytes)
    result = await engine.restore(document, RestoreOptions(skip_users=True))
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Literal, TypeVar

from pydantic import BaseModel, Field, ValidationError

from itam_backup.adapters.base import DataAccess, is_valid_column
from itam_backup.backup.models import (
    CLEAR_ORDER,
    NOTIFICATION_TABLES,
    RESTORE_ORDER,
    SCHEMA_VERSION,
    USER_TABLES,
    BackupDocument,
    RestoreOptions,
    RestoreResult,
    TableWrite,
)
from itam_backup.errors import (
    InvalidBackupFormat,
    RestoreInProgressError,
    RestoreStepFailure,
)

logger = logging.getLogger(__name__)

DEFAULT_WRITE_TIMEOUT = 120.0

T = TypeVar("T")


# ============================================================================
# Validation
# ============================================================================


def is_version_compatible(version: str) -> bool:
    """A backup is restorable when its major version matches ours."""
    return version.split(".")[0] == SCHEMA_VERSION.split(".")[0]


def validate_backup_data(data: Any) -> BackupDocument:
    """Check the shape of a decoded backup and build a ``BackupDocument``.

    Missing tables are treated as empty.  Unknown table keys are ignored
    with a warning.

    Raises:
        InvalidBackupFormat: If the data is not an object, ``timestamp`` is
            missing, ``tables`` is not an object, a known table is not a
            list of objects, a row key is not a plain lower-case column
            name, or the major version is incompatible.
    """
    if not isinstance(data, dict):
        raise InvalidBackupFormat("not an object")

    timestamp = data.get("timestamp")
    if not timestamp or not isinstance(timestamp, str):
        raise InvalidBackupFormat("missing or invalid timestamp")

    tables = data.get("tables")
    if not isinstance(tables, dict):
        raise InvalidBackupFormat("missing or invalid tables object")

    for table, rows in tables.items():
        if table not in RESTORE_ORDER:
            logger.warning(f"Ignoring unknown table '{table}' in backup")
            continue
        if not isinstance(rows, list):
            raise InvalidBackupFormat(f"missing or invalid table '{table}'")
        if any(not isinstance(row, dict) for row in rows):
            raise InvalidBackupFormat(f"table '{table}' contains non-object rows")
        for row in rows:
            bad = next((key for key in row if not is_valid_column(key)), None)
            if bad is not None:
                raise InvalidBackupFormat(f"invalid column name {bad!r} in table '{table}'")

    version = data.get("version", data.get("schema_version"))
    if version is None:
        logger.warning("Backup has no version field, assuming current schema")
    elif not isinstance(version, str):
        raise InvalidBackupFormat("invalid version")
    elif not is_version_compatible(version):
        raise InvalidBackupFormat(
            f"unsupported backup version '{version}' (expected {SCHEMA_VERSION.split('.')[0]}.x)"
        )

    try:
        return BackupDocument.model_validate(data)
    except ValidationError as e:
        raise InvalidBackupFormat(str(e)) from e


def parse_backup(raw: bytes | str | dict[str, Any]) -> BackupDocument:
    """Decode an uploaded backup file and validate it.

    Args:
        raw: File contents (bytes or text) or an already decoded dict.

    Raises:
        InvalidBackupFormat: If the content is not JSON or fails validation.
    """
    if isinstance(raw, dict):
        return validate_backup_data(raw)
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidBackupFormat(f"not valid JSON: {e}") from e
    return validate_backup_data(data)


# ============================================================================
# Pipeline
# ============================================================================


class RestoreStep(BaseModel):
    """One named step of the restore pipeline."""

    table: str
    action: Literal["clear", "upsert"]

    @property
    def name(self) -> str:
        return f"{self.action}:{self.table}"


class RestorePlan(BaseModel):
    """Ordered steps derived from ``RestoreOptions``."""

    steps: list[RestoreStep] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


def _excluded_tables(options: RestoreOptions) -> frozenset[str]:
    excluded: set[str] = set()
    if options.skip_users:
        excluded |= USER_TABLES
    if options.skip_notifications:
        excluded |= NOTIFICATION_TABLES
    return frozenset(excluded)


def plan_restore(options: RestoreOptions) -> RestorePlan:
    """Build the step list: clears in reverse order, then upserts in forward order."""
    excluded = _excluded_tables(options)
    steps: list[RestoreStep] = []

    if options.clear_existing:
        steps.extend(
            RestoreStep(table=t, action="clear") for t in CLEAR_ORDER if t not in excluded
        )
    steps.extend(
        RestoreStep(table=t, action="upsert") for t in RESTORE_ORDER if t not in excluded
    )

    return RestorePlan(
        steps=steps,
        skipped=[t for t in RESTORE_ORDER if t in excluded],
    )


class RestoreEngine:
    """Applies backup documents to a ``DataAccess`` target.

    Only one restore runs at a time per engine; a concurrent request fails
    fast with ``RestoreInProgressError`` before touching the store.

    Args:
        adapter: Target data access capability.
        timeout: Per-step deadline in seconds.  A step that exceeds it is a
            failed step.
    """

    def __init__(self, adapter: DataAccess, timeout: float = DEFAULT_WRITE_TIMEOUT) -> None:
        self._adapter = adapter
        self._timeout = timeout
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def restore(
        self,
        document: BackupDocument,
        options: RestoreOptions | None = None,
    ) -> RestoreResult:
        """Reapply ``document`` according to ``options``.

        Returns:
            ``RestoreResult`` listing cleared, restored and skipped tables.

        Raises:
            RestoreInProgressError: Another restore is running.
            RestoreStepFailure: A step failed; earlier steps stay applied.
        """
        options = options or RestoreOptions()
        if self._lock.locked():
            raise RestoreInProgressError("A restore is already in progress")

        async with self._lock:
            return await self._run(document, options)

    async def restore_upload(
        self,
        raw: bytes | str | dict[str, Any],
        options: RestoreOptions | None = None,
    ) -> RestoreResult:
        """Parse an uploaded file and restore it.

        Parsing and validation complete before any write; a parse failure
        raises ``InvalidBackupFormat`` with zero writes issued.
        """
        document = parse_backup(raw)
        return await self.restore(document, options)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"step timed out after {self._timeout}s") from None

    async def _run(self, document: BackupDocument, options: RestoreOptions) -> RestoreResult:
        plan = plan_restore(options)
        result = RestoreResult(skipped=list(plan.skipped))
        completed: list[str] = []

        logger.info(
            f"Restoring backup '{document.name}' ({document.timestamp}): "
            f"{' -> '.join(s.name for s in plan.steps)}"
        )

        for step in plan.steps:
            if step.action == "clear":
                try:
                    await self._bounded(self._adapter.delete_all(step.table))
                except Exception as e:
                    logger.error(f"Restore aborted while clearing {step.table}: {e!r}")
                    raise RestoreStepFailure(step.table, result.cleared, e, phase="clear") from e
                result.cleared.append(step.table)
                continue

            rows = [dict(row) for row in document.tables.rows(step.table)]
            try:
                written = await self._bounded(self._adapter.upsert(step.table, rows)) if rows else 0
            except Exception as e:
                logger.error(f"Restore aborted at {step.table}: {e!r}")
                raise RestoreStepFailure(step.table, completed, e) from e

            completed.append(step.table)
            result.restored.append(
                TableWrite(table=step.table, rows=written if isinstance(written, int) else len(rows))
            )

        logger.info(
            f"Restore complete: {result.total_rows} rows across "
            f"{len(result.restored)} tables (skipped: {', '.join(result.skipped) or 'none'})"
        )
        return result

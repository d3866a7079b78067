"""Backup service: the operations exposed to the admin UI and automation.

Wires the snapshot builder, restore engine, catalog, delivery and
schedule manager together.  Each public coroutine maps to one operator
action (create, download, delete, restore, upload, stats, schedules).

Usage:
    service = BackupService(adapter, LocalCatalog("backups"), InMemoryScheduleStore())
    record = await service.create_backup("Before upgrade")
    result = await service.restore_backup(record.id, RestoreOptions(clear_existing=True))
"""

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

from itam_backup.adapters.base import DataAccess
from itam_backup.backup.models import (
    SCHEDULE_CREATOR_PREFIX,
    BackupDocument,
    BackupRecord,
    RestoreOptions,
    RestoreResult,
    SystemStats,
)
from itam_backup.backup.restore import DEFAULT_WRITE_TIMEOUT, RestoreEngine, parse_backup
from itam_backup.backup.snapshot import DEFAULT_READ_TIMEOUT, create_snapshot, default_backup_name
from itam_backup.catalog.base import BackupCatalog, download_filename
from itam_backup.delivery.delivery import BackupDelivery, resolve_recipients
from itam_backup.errors import CatalogTimeoutError, DeliveryFailure
from itam_backup.schedule.manager import ScheduleManager, utc_now
from itam_backup.schedule.models import Schedule, ScheduleSpec
from itam_backup.schedule.store import ScheduleStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackupService:
    """Facade over the backup/restore engine.

    Args:
        adapter: Data access capability for the tracked tables.
        catalog: Where backup documents are stored.
        schedule_store: Where schedules are stored.
        delivery: Optional email delivery.  ``None`` disables emailing.
        read_timeout: Per-table read deadline for snapshots, also applied to
            catalog reads (seconds).
        write_timeout: Per-step deadline for restores, also applied to
            catalog writes (seconds).
        timezone_name: Zone in which schedule times of day are interpreted.
        clock: Current-time source (injectable for tests).
    """

    def __init__(
        self,
        adapter: DataAccess,
        catalog: BackupCatalog,
        schedule_store: ScheduleStore,
        delivery: BackupDelivery | None = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        timezone_name: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._adapter = adapter
        self._catalog = catalog
        self._delivery = delivery
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._clock = clock
        self.restore_engine = RestoreEngine(adapter, timeout=write_timeout)
        self.schedules = ScheduleManager(
            schedule_store,
            run_backup=self.run_scheduled_backup,
            timezone_name=timezone_name,
            clock=clock,
        )

    async def _catalog_call(self, action: str, awaitable: Awaitable[T], timeout: float) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise CatalogTimeoutError(action, timeout) from None

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def create_backup(
        self,
        name: str | None = None,
        description: str | None = None,
        created_by: str = "system",
        deliver: bool = False,
    ) -> BackupRecord:
        """Snapshot every table and store the document in the catalog.

        Raises:
            SnapshotError: A table read failed; nothing was stored.
            CatalogTimeoutError: The catalog did not confirm the store in time.
        """
        document = await create_snapshot(
            self._adapter,
            name=name,
            description=description,
            timeout=self._read_timeout,
            now=self._clock(),
        )
        record = await self._catalog_call(
            "store", self._catalog.store(document, created_by=created_by), self._write_timeout
        )
        if deliver:
            await self.deliver(document)
        return record

    async def list_backups(self) -> list[BackupRecord]:
        return await self._catalog_call("list", self._catalog.list(), self._read_timeout)

    async def get_backup(self, backup_id: str) -> BackupDocument:
        return await self._catalog_call("get", self._catalog.get(backup_id), self._read_timeout)

    async def download_backup(self, backup_id: str) -> tuple[str, bytes]:
        """Return ``(filename, json_bytes)`` for a stored backup."""
        document = await self._catalog_call(
            "get", self._catalog.get(backup_id), self._read_timeout
        )
        return download_filename(document), document.to_json(indent=2).encode("utf-8")

    async def delete_backup(self, backup_id: str) -> None:
        await self._catalog_call("delete", self._catalog.delete(backup_id), self._write_timeout)

    async def restore_backup(
        self, backup_id: str, options: RestoreOptions | None = None
    ) -> RestoreResult:
        """Restore a catalog entry.

        The stored document goes through the same validation as an upload,
        so documents written by an incompatible version are refused.
        """
        document = await self._catalog_call(
            "get", self._catalog.get(backup_id), self._read_timeout
        )
        validated = parse_backup(document.to_wire())
        return await self.restore_engine.restore(validated, options)

    async def upload_and_restore(
        self,
        file: bytes | str | Path | dict[str, Any],
        options: RestoreOptions | None = None,
    ) -> RestoreResult:
        """Parse an uploaded backup file and restore it.

        ``file`` may be raw bytes, JSON text, a decoded dict, or a path.
        Parsing fully completes before the first write.
        """
        if isinstance(file, Path):
            file = file.read_bytes()
        return await self.restore_engine.restore_upload(file, options)

    async def get_system_stats(self) -> SystemStats:
        """Row counts of the main tables and the newest backup timestamp."""
        tables = ("assets", "users", "issues", "departments")
        results = await asyncio.gather(
            *(
                asyncio.wait_for(self._adapter.read_all(t), timeout=self._read_timeout)
                for t in tables
            )
        )
        counts = {t: len(rows) for t, rows in zip(tables, results)}
        backups = await self._catalog_call("list", self._catalog.list(), self._read_timeout)
        return SystemStats(
            total_assets=counts["assets"],
            total_users=counts["users"],
            total_issues=counts["issues"],
            total_departments=counts["departments"],
            last_backup=backups[0].timestamp if backups else None,
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver(self, document: BackupDocument) -> list[DeliveryFailure]:
        """Email ``document`` to admins and department officers (best effort)."""
        if self._delivery is None:
            return []
        try:
            recipients = await asyncio.wait_for(
                resolve_recipients(self._adapter), timeout=self._read_timeout
            )
        except Exception as e:
            logger.warning(f"Could not resolve backup email recipients: {e!r}")
            return [DeliveryFailure("recipients", e)]
        return await self._delivery.deliver(document, recipients)

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def schedule_backup(self, spec: ScheduleSpec) -> Schedule:
        return await self.schedules.create_schedule(spec)

    async def get_backup_schedules(self) -> list[Schedule]:
        return await self.schedules.list_schedules()

    async def delete_backup_schedule(self, schedule_id: str) -> None:
        await self.schedules.delete_schedule(schedule_id)

    async def set_backup_schedule_enabled(self, schedule_id: str, enabled: bool) -> Schedule:
        """Pause or resume a schedule without deleting it."""
        return await self.schedules.set_enabled(schedule_id, enabled)

    async def run_scheduled_backup(self, schedule: Schedule) -> BackupRecord:
        """One scheduled run: snapshot, store, email, then retention.

        Only the snapshot and the store can fail the run.  Email and
        retention problems are logged.
        """
        now = self._clock()
        document = await create_snapshot(
            self._adapter,
            name=default_backup_name(now, prefix=f"Scheduled Backup - {schedule.frequency}"),
            description=f"Automatic backup from schedule {schedule.id}",
            timeout=self._read_timeout,
            now=now,
        )
        record = await self._catalog_call(
            "store",
            self._catalog.store(document, created_by=f"{SCHEDULE_CREATOR_PREFIX}{schedule.id}"),
            self._write_timeout,
        )
        await self.deliver(document)

        cutoff = now - timedelta(days=schedule.retention_days)
        try:
            pruned = await self._catalog_call(
                "prune", self._catalog.prune(schedule.id, cutoff), self._write_timeout
            )
        except Exception as e:
            logger.warning(f"Retention for schedule {schedule.id} failed: {e!r}")
        else:
            if pruned:
                logger.info(f"Retention: removed {len(pruned)} old backup(s) of {schedule.id}")
        return record

    async def close(self) -> None:
        """Release the data access adapter's connections."""
        await self._adapter.close()

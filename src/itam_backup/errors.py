"""Error taxonomy for snapshot, restore, catalog, and delivery operations.

Every error raised by ``itam_backup`` derives from ``BackupError`` so that
callers (CLI, admin UI, scheduler) can catch one base class and decide on
user-visible messaging themselves.

``ScheduleNotDue`` and ``ScheduleConcurrencyConflict`` are internal guard
conditions of the schedule manager and never escape ``tick()``.
"""

from pydantic import BaseModel


class TableFailure(BaseModel):
    """A single failed table read during snapshot assembly."""

    table: str
    error: str


class BackupError(Exception):
    """Base class for all backup/restore errors."""

    pass


class SnapshotError(BackupError):
    """Raised when one or more table reads fail during a snapshot.

    No document is produced and nothing is persisted.

    Attributes:
        table_failures: One entry per table whose read failed.
    """

    def __init__(self, table_failures: list[TableFailure]) -> None:
        self.table_failures = table_failures
        detail = ", ".join(f"{f.table}: {f.error}" for f in table_failures)
        super().__init__(f"Failed to fetch data for backup: {detail}")


class InvalidBackupFormat(BackupError):
    """Raised when a backup document is malformed or incomplete."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid backup data: {reason}")


class RestoreStepFailure(BackupError):
    """Raised when a restore step fails partway through the pipeline.

    Steps completed before the failure are NOT rolled back.

    Attributes:
        table: Table whose write (or clear) failed.
        prior_successes: Tables completed before the failing step, in order.
        cause: The underlying exception.
    """

    def __init__(
        self,
        table: str,
        prior_successes: list[str],
        cause: BaseException | None = None,
        phase: str = "restore",
    ) -> None:
        self.table = table
        self.prior_successes = list(prior_successes)
        self.cause = cause
        self.phase = phase
        done = ", ".join(prior_successes) or "none"
        super().__init__(
            f"Failed to {phase} {table}: {cause!r} (completed before failure: {done})"
        )


class RestoreInProgressError(BackupError):
    """Raised when a restore is requested while another one is running."""

    pass


class DeliveryFailure(BackupError):
    """Archive/email delivery to one recipient failed after a successful store."""

    def __init__(self, recipient: str, cause: BaseException | str) -> None:
        self.recipient = recipient
        self.cause = cause
        super().__init__(f"Delivery to {recipient} failed: {cause}")


class BackupNotFoundError(BackupError):
    """Raised when a catalog entry does not exist."""

    pass


class ScheduleNotFoundError(BackupError):
    """Raised when a schedule id does not exist."""

    pass


class ScheduleNotDue(BackupError):
    """Internal: the schedule is disabled or its next run is in the future."""

    pass


class ScheduleConcurrencyConflict(BackupError):
    """Internal: a run is already in flight, or the schedule changed mid-run."""

    pass


class CatalogTimeoutError(BackupError):
    """Raised when a catalog call does not finish within its deadline."""

    def __init__(self, action: str, timeout: float) -> None:
        self.action = action
        self.timeout = timeout
        super().__init__(f"Catalog {action} timed out after {timeout}s")

"""itam-backup: backup/restore engine for the IT asset management database.

Produces consistent, versioned exports of the asset-management tables,
restores them in foreign-key dependency order, and runs unattended
scheduled backups with email delivery.

Usage:
    from itam_backup import BackupService, load_config, build_service
    from itam_backup import RestoreOptions, ScheduleSpec
"""

__version__ = "0.1.0"

# Adapters
from itam_backup.adapters.base import DataAccess
from itam_backup.adapters.postgres import AsyncPostgresAdapter

# Backup models and engine
from itam_backup.backup.models import (
    BackupDocument,
    BackupRecord,
    RestoreOptions,
    RestoreResult,
    SystemStats,
)
from itam_backup.backup.restore import RestoreEngine, parse_backup
from itam_backup.backup.snapshot import create_snapshot

# Catalog
from itam_backup.catalog.base import BackupCatalog
from itam_backup.catalog.local import LocalCatalog

# Config
from itam_backup.config.loader import load_config
from itam_backup.config.models import BackupConfig

# Errors
from itam_backup.errors import (
    BackupError,
    BackupNotFoundError,
    CatalogTimeoutError,
    DeliveryFailure,
    InvalidBackupFormat,
    RestoreInProgressError,
    RestoreStepFailure,
    SnapshotError,
)

# Factory / service
from itam_backup.factory import ConfigurationError, build_service
from itam_backup.schedule.models import Schedule, ScheduleSpec
from itam_backup.service import BackupService

__all__ = [
    # Adapters
    "DataAccess",
    "AsyncPostgresAdapter",
    # Backup
    "BackupDocument",
    "BackupRecord",
    "RestoreOptions",
    "RestoreResult",
    "SystemStats",
    "RestoreEngine",
    "parse_backup",
    "create_snapshot",
    # Catalog
    "BackupCatalog",
    "LocalCatalog",
    # Config
    "load_config",
    "BackupConfig",
    # Errors
    "BackupError",
    "BackupNotFoundError",
    "CatalogTimeoutError",
    "DeliveryFailure",
    "InvalidBackupFormat",
    "RestoreInProgressError",
    "RestoreStepFailure",
    "SnapshotError",
    # Service
    "BackupService",
    "ConfigurationError",
    "Schedule",
    "ScheduleSpec",
    "build_service",
]

# Optional: AsyncSupabaseAdapter (only available with supabase extra)
try:
    from itam_backup.adapters.supabase import AsyncSupabaseAdapter

    __all__.append("AsyncSupabaseAdapter")
except ImportError:
    # supabase extra not installed -- AsyncSupabaseAdapter unavailable
    pass

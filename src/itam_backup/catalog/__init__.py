"""Backup catalog: durable, listable store of backup documents.

``SupabaseCatalog`` is only available when the ``supabase`` extra is
installed.

Usage:
    from itam_backup.catalog import BackupCatalog, LocalCatalog
"""

from itam_backup.catalog.base import BackupCatalog, download_filename
from itam_backup.catalog.local import LocalCatalog

__all__ = [
    "BackupCatalog",
    "LocalCatalog",
    "download_filename",
]

try:
    from itam_backup.catalog.supabase import SupabaseCatalog

    __all__.append("SupabaseCatalog")
except ImportError:
    # supabase extra not installed -- SupabaseCatalog unavailable
    pass

"""Data access adapters package.

Provides the ``DataAccess`` Protocol and concrete async adapter
implementations for PostgreSQL and (optionally) Supabase.

``AsyncSupabaseAdapter`` is only available when the ``supabase`` extra
is installed.  A missing ``supabase`` dependency does not prevent
importing the rest of the package.

Usage:
    from itam_backup.adapters import DataAccess, AsyncPostgresAdapter

    # With supabase extra installed:
    from itam_backup.adapters import AsyncSupabaseAdapter
"""

from itam_backup.adapters.base import DataAccess
from itam_backup.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DataAccess",
    "AsyncPostgresAdapter",
]

try:
    from itam_backup.adapters.supabase import AsyncSupabaseAdapter

    __all__.append("AsyncSupabaseAdapter")
except ImportError:
    # supabase extra not installed -- AsyncSupabaseAdapter unavailable
    pass

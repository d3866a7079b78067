"""Data access protocol definition.

Defines the ``DataAccess`` Protocol that the snapshot builder and the
restore engine consume.  The core has no knowledge of the wire protocol
to the underlying store -- it only reads, upserts and clears whole
tables by name.

Usage:
    from itam_backup.adapters.base import DataAccess

    async def copy_departments(src: DataAccess, dst: DataAccess) -> None:
        rows = await src.read_all("departments")
        await dst.upsert("departments", rows)
"""

import re
from typing import Any, Protocol

from itam_backup.tables import RESTORE_ORDER

CATALOG_TABLE = "backups"

KNOWN_TABLES: frozenset[str] = frozenset(RESTORE_ORDER) | {CATALOG_TABLE}

COLUMN_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")


def check_table(table: str) -> str:
    """Return ``table`` if it is a known collection, else raise ``ValueError``.

    Adapters interpolate table names into queries, so only the fixed set of
    tracked tables (plus the catalog table) is ever accepted.
    """
    if table not in KNOWN_TABLES:
        raise ValueError(f"Unknown table: {table!r}")
    return table


def is_valid_column(name: Any) -> bool:
    """True if ``name`` is a plain lower-case SQL identifier."""
    return isinstance(name, str) and COLUMN_NAME_PATTERN.fullmatch(name) is not None


def check_column(name: str) -> str:
    """Return ``name`` if it is a safe column identifier, else raise ``ValueError``."""
    if not is_valid_column(name):
        raise ValueError(f"Invalid column name: {name!r}")
    return name


class DataAccess(Protocol):
    """Generic read/write capability over named tables.

    All methods are async -- callers must ``await`` every operation.
    """

    async def read_all(self, table: str) -> list[dict[str, Any]]:
        """Return every row of ``table``.

        Args:
            table: Table name (one of the tracked collections).

        Returns:
            List of dicts, one per row.  Empty list if the table is empty.
        """
        ...

    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> int:
        """Insert-or-replace rows keyed by ``id``.

        Repeat application with the same rows is a no-op beyond the first.

        Args:
            table: Table name.
            rows: Rows to write.

        Returns:
            Number of rows written.
        """
        ...

    async def delete_all(self, table: str) -> None:
        """Delete every row of ``table``."""
        ...

    async def close(self) -> None:
        """Close connections and release resources."""
        ...

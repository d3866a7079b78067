"""Async Supabase data access adapter.

Provides ``AsyncSupabaseAdapter``, an async implementation of the
``DataAccess`` protocol using the supabase-py async client.

The client is initialized lazily on first use with an ``asyncio.Lock``
to ensure it is created exactly once.

Usage:
    from itam_backup.adapters.supabase import AsyncSupabaseAdapter

    adapter = AsyncSupabaseAdapter(
        url="https://xyzproject.supabase.co",
        key="eyJ...",
    )

    rows = await adapter.read_all("departments")
    await adapter.close()
"""

import asyncio
from typing import Any

from supabase import AsyncClient, acreate_client

from itam_backup.adapters.base import check_table


class AsyncSupabaseAdapter:
    """Async Supabase implementation of the ``DataAccess`` protocol.

    Args:
        url: Supabase project URL.
        key: Supabase API key.  Restores need the service role key so that
            row-level security does not hide rows.

    Example:
        adapter = AsyncSupabaseAdapter(
            url="https://xyzproject.supabase.co",
            key="eyJhbGciOiJIUzI1NiIs...",
        )
        users = await adapter.read_all("users")
        await adapter.close()
    """

    def __init__(self, url: str, key: str) -> None:
        self._url: str = url
        self._key: str = key
        self._client: AsyncClient | None = None
        self._lock: asyncio.Lock = asyncio.Lock()

    async def get_client(self) -> AsyncClient:
        """Get or create the async Supabase client.

        Also used by ``SupabaseCatalog`` so both share one connection.
        """
        if self._client is None:
            async with self._lock:
                # Double-check after acquiring lock
                if self._client is None:
                    self._client = await acreate_client(self._url, self._key)
        return self._client

    async def read_all(self, table: str) -> list[dict[str, Any]]:
        """Select every row of ``table``."""
        client = await self.get_client()
        result = await client.table(check_table(table)).select("*").execute()
        return result.data or []

    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> int:
        """Upsert rows with ``on_conflict="id"``."""
        if not rows:
            return 0
        client = await self.get_client()
        result = await (
            client.table(check_table(table))
            .upsert(rows, on_conflict="id")
            .execute()
        )
        return len(result.data) if result.data is not None else len(rows)

    async def delete_all(self, table: str) -> None:
        """Delete every row.

        PostgREST refuses an unfiltered DELETE, so the filter is one that
        every row satisfies (the primary key is never null).
        """
        client = await self.get_client()
        await client.table(check_table(table)).delete().not_.is_("id", "null").execute()

    async def close(self) -> None:
        """Close the Supabase async client.

        If the client was never initialized this is a no-op.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None

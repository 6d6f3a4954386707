"""
SupabaseTranscriptStore: transcript records in a Supabase (PostgREST) table.

Uses the sync supabase client; every call runs in the default executor so the
event loop never blocks on HTTP. Errors surface as StoreError.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from scribe.errors import StoreError
from scribe.storage.base import Record, TranscriptStore

logger = logging.getLogger(__name__)


class SupabaseTranscriptStore(TranscriptStore):
    """One row per session in `table` (default transcripts2)."""

    name = "supabase"

    def __init__(self, client: Client, table: str = "transcripts2") -> None:
        self._client = client
        self._table = table

    @classmethod
    def from_credentials(cls, url: str, key: str, table: str = "transcripts2") -> "SupabaseTranscriptStore":
        logger.info("Supabase client initialized for table %s", table)
        return cls(create_client(url, key), table=table)

    async def _run(self, op: str, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except (APIError, httpx.HTTPError) as e:
            logger.warning("Supabase %s failed on %s: %s", op, self._table, e)
            raise StoreError(f"Supabase {op} failed: {e}") from e

    async def _insert(self, row: Record) -> Record:
        resp = await self._run(
            "insert",
            lambda: self._client.table(self._table).insert(row).execute(),
        )
        if not resp.data:
            raise StoreError("Supabase insert returned no rows")
        return resp.data[0]

    async def _fetch(self, record_id: int) -> Record | None:
        resp = await self._run(
            "select",
            lambda: self._client.table(self._table).select("*").eq("id", record_id).limit(1).execute(),
        )
        return resp.data[0] if resp.data else None

    async def _fetch_latest(self, user_id: str) -> Record | None:
        resp = await self._run(
            "select latest",
            lambda: (
                self._client.table(self._table)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            ),
        )
        return resp.data[0] if resp.data else None

    async def _update(self, record_id: int, patch: Record) -> None:
        await self._run(
            "update",
            lambda: self._client.table(self._table).update(patch).eq("id", record_id).execute(),
        )

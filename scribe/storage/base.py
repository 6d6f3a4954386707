"""
TranscriptStore: remote record store for transcript sessions.

One record per recording session holds an ordered chunk array
(`transcript_chunk`) and the derived flattened text (`transcript`). Backends only
implement four primitives (insert, fetch, fetch latest, update); the operations
the pipeline uses are built on top of them here so every backend appends and
flattens the same way.

The read-modify-write in append_chunks is not isolated against concurrent
writers; each session has exactly one writer (its PersistenceBuffer).
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Sequence

from scribe.errors import StoreError
from scribe.transcript.models import Chunk, flatten_chunks

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TranscriptStore(ABC):
    """Base for transcript record stores. All methods may raise StoreError."""

    name = "base"

    @abstractmethod
    async def _insert(self, row: Record) -> Record:
        """Insert one row; return it as stored (including generated id)."""
        ...

    @abstractmethod
    async def _fetch(self, record_id: int) -> Record | None:
        """Row by id, or None."""
        ...

    @abstractmethod
    async def _fetch_latest(self, user_id: str) -> Record | None:
        """Most recently created row for user_id, or None."""
        ...

    @abstractmethod
    async def _update(self, record_id: int, patch: Record) -> None:
        """Apply a partial update to one row."""
        ...

    async def create_record(
        self,
        user_id: str,
        patient_code: str,
        patient_uuid: str | None = None,
        language: str = "en",
    ) -> int:
        row = await self._insert(
            {
                "user_id": user_id,
                "patient_code": patient_code,
                "patient_uuid": patient_uuid,
                "language": language,
                "transcript_chunk": [],
                "transcript": "",
            }
        )
        record_id = row.get("id")
        if record_id is None:
            raise StoreError("Insert returned no id")
        logger.info("Created transcript record %s (user=%s, patient_code=%s)", record_id, user_id, patient_code)
        return int(record_id)

    async def get_record(self, record_id: int) -> Record | None:
        return await self._fetch(record_id)

    async def read_latest_record(self, user_id: str) -> Record | None:
        return await self._fetch_latest(user_id)

    async def read_chunks(self, record_id: int) -> list[Record]:
        row = await self._fetch(record_id)
        if row is None:
            raise StoreError(f"Transcript record {record_id} not found")
        return list(row.get("transcript_chunk") or [])

    async def write(
        self,
        record_id: int,
        chunks: Sequence[Record],
        full_text: str,
        completed_at: str | None = None,
    ) -> None:
        patch: Record = {"transcript_chunk": list(chunks), "transcript": full_text}
        if completed_at is not None:
            patch["completed_at"] = completed_at
        await self._update(record_id, patch)

    async def append_chunks(self, record_id: int, chunks: Sequence[Chunk]) -> int:
        """Read stored chunks, append, rebuild flattened text, write both. Returns new total."""
        existing = await self.read_chunks(record_id)
        updated = existing + [c.to_record() for c in chunks]
        await self.write(record_id, updated, flatten_chunks(updated))
        logger.info("Saved %d chunks to transcript %s (total: %d)", len(chunks), record_id, len(updated))
        return len(updated)

    async def mark_complete(self, record_id: int) -> None:
        await self._update(record_id, {"completed_at": utc_now_iso()})
        logger.info("Marked transcript %s as completed", record_id)

    async def update_patient(
        self,
        record_id: int,
        patient_code: str | None = None,
        patient_uuid: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        patch: Record = {}
        if patient_code is not None:
            patch["patient_code"] = patient_code
        if patient_uuid is not None:
            patch["patient_uuid"] = patient_uuid
        if metadata is not None:
            patch["metadata"] = metadata
        if not patch:
            return
        await self._update(record_id, patch)

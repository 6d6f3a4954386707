"""
SpillWriter: last-resort local copy of chunks the store never accepted.

When a session closes and the persistence buffer still holds chunks after its
drain attempts, they are appended as JSON lines to spill/{session_id}.jsonl so an
operator can replay them. Append-only: a session that spills twice gets both
batches in order.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from scribe.config import Settings, get_settings
from scribe.storage.base import utc_now_iso
from scribe.transcript.models import Chunk

logger = logging.getLogger(__name__)


class SpillWriterBase(ABC):
    """Base for spill writers. spill() returns True when the chunks are on disk."""

    @abstractmethod
    async def spill(self, session_id: str, record_id: Optional[int], chunks: Sequence[Chunk]) -> bool:
        ...


class NoOpSpillWriter(SpillWriterBase):
    """When spilling is disabled. Chunks are reported lost."""

    async def spill(self, session_id: str, record_id: Optional[int], chunks: Sequence[Chunk]) -> bool:
        if chunks:
            logger.error("Spill disabled; %d unsaved chunks of session %s are lost", len(chunks), session_id)
        return False


class SpillWriter(SpillWriterBase):
    """One file per session: {spill_dir}/{session_id}.jsonl, one chunk per line."""

    def __init__(self, spill_dir: Optional[str] = None) -> None:
        self._spill_dir = spill_dir or get_settings().SPILL_DIR

    def path_for(self, session_id: str) -> str:
        return os.path.join(self._spill_dir, f"{session_id}.jsonl")

    def _write_sync(self, path: str, lines: list[str]) -> None:
        os.makedirs(self._spill_dir, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
            f.flush()

    async def spill(self, session_id: str, record_id: Optional[int], chunks: Sequence[Chunk]) -> bool:
        if not chunks:
            return True
        spilled_at = utc_now_iso()
        lines = [
            json.dumps(
                {"session_id": session_id, "record_id": record_id, "spilled_at": spilled_at, "chunk": c.to_record()},
                ensure_ascii=False,
            )
            for c in chunks
        ]
        path = self.path_for(session_id)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write_sync, path, lines)
        except OSError as e:
            logger.error("Spill write failed for %s: %s (%d chunks lost)", path, e, len(chunks))
            return False
        logger.warning("Spilled %d unsaved chunks of session %s to %s", len(chunks), session_id, path)
        return True


def create_spill_writer(settings: Optional[Settings] = None) -> SpillWriterBase:
    """SpillWriter when SPILL_ENABLED is true; else no-op."""
    settings = settings or get_settings()
    if not settings.SPILL_ENABLED:
        return NoOpSpillWriter()
    return SpillWriter(settings.SPILL_DIR)

"""Transcript persistence: record store backends, batching buffer, local spill."""
from __future__ import annotations

import logging

from scribe.config import Settings, get_settings
from scribe.storage.base import TranscriptStore
from scribe.storage.buffer import PersistenceBuffer
from scribe.storage.memory import InMemoryTranscriptStore
from scribe.storage.spill import SpillWriter, SpillWriterBase, create_spill_writer

logger = logging.getLogger(__name__)


def create_transcript_store(settings: Settings | None = None) -> TranscriptStore:
    """Build the configured store. Missing Supabase credentials fall back to memory."""
    settings = settings or get_settings()
    if settings.STORE_BACKEND == "supabase":
        if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY:
            from scribe.storage.supabase_store import SupabaseTranscriptStore

            return SupabaseTranscriptStore.from_credentials(
                settings.SUPABASE_URL,
                settings.SUPABASE_SERVICE_ROLE_KEY,
                table=settings.SUPABASE_TABLE,
            )
        logger.warning(
            "STORE_BACKEND=supabase but SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY missing; "
            "using in-memory store, nothing will be persisted"
        )
    return InMemoryTranscriptStore()


__all__ = [
    "TranscriptStore",
    "PersistenceBuffer",
    "InMemoryTranscriptStore",
    "SpillWriter",
    "SpillWriterBase",
    "create_spill_writer",
    "create_transcript_store",
]

"""
PersistenceBuffer: batches finalized chunks of one session into store writes.

The live path only calls enqueue(), which is synchronous and never waits on the
store. Writes happen in background flushes:

- enqueue: append; at high_water_mark pending chunks flush now, otherwise arm a
  debounce timer (flush_delay) unless one is armed already.
- flush: snapshot + clear pending, then one append_chunks() round trip. On any
  failure the snapshot is put back in front of chunks enqueued meanwhile and a
  retry is armed after flush_delay. Live retries are unbounded at a fixed delay.
- drain: session close. Waits for an in-flight flush, then at most
  drain_attempts flushes; marks the record complete on success, otherwise spills
  what is left to disk.

Flushes of one buffer never overlap (per-buffer lock), so chunks reach the store
in finalization order. The transcript record is created lazily: a failed
creation is retried by the next flush.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from scribe.config import get_settings
from scribe.errors import StoreError
from scribe.storage.base import TranscriptStore
from scribe.storage.spill import SpillWriterBase, create_spill_writer
from scribe.transcript.models import Chunk

logger = logging.getLogger(__name__)

RecordFactory = Callable[[], Awaitable[int]]


class PersistenceBuffer:
    def __init__(
        self,
        store: TranscriptStore,
        session_id: str,
        record_id: Optional[int] = None,
        create_record: Optional[RecordFactory] = None,
        high_water_mark: Optional[int] = None,
        flush_delay: Optional[float] = None,
        drain_attempts: Optional[int] = None,
        spill_writer: Optional[SpillWriterBase] = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._session_id = session_id
        self._record_id = record_id
        self._create_record = create_record
        self._high_water_mark = max(1, high_water_mark or settings.PERSIST_HIGH_WATER_MARK)
        self._flush_delay = flush_delay if flush_delay is not None else settings.PERSIST_FLUSH_DELAY_SECONDS
        self._drain_attempts = max(1, drain_attempts or settings.PERSIST_DRAIN_ATTEMPTS)
        self._spill = spill_writer or create_spill_writer()

        self._pending: list[Chunk] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._flush_lock = asyncio.Lock()
        self._draining = False
        self._closed = False

        self.persisted_count = 0
        self.failed_attempts = 0

    @property
    def record_id(self) -> Optional[int]:
        return self._record_id

    @property
    def pending(self) -> list[Chunk]:
        return list(self._pending)

    @property
    def flush_timer_active(self) -> bool:
        return self._timer is not None

    async def ensure_record(self) -> Optional[int]:
        """Create the store record now if there is none yet. Returns its id, or None on failure."""
        async with self._flush_lock:
            try:
                await self._ensure_record_locked()
            except Exception as e:
                logger.warning("Session %s: transcript record creation failed: %s", self._session_id, e)
        return self._record_id

    def enqueue(self, chunk: Chunk) -> None:
        if self._closed:
            logger.warning("Session %s: chunk enqueued after drain; it will not be persisted", self._session_id)
        self._pending.append(chunk)
        if len(self._pending) >= self._high_water_mark:
            self._cancel_timer()
            self._spawn_flush()
        elif self._timer is None:
            self._schedule(self._flush_delay)

    async def flush(self) -> bool:
        """Persist everything pending. True when nothing is left unsaved."""
        async with self._flush_lock:
            return await self._flush_locked()

    async def drain(self) -> bool:
        """Final flush on session close. True when all chunks are stored and the record completed."""
        self._draining = True
        self._cancel_timer()
        ok = False
        for attempt in range(1, self._drain_attempts + 1):
            async with self._flush_lock:
                ok = await self._flush_locked(ensure_record=True)
            if ok:
                break
            if attempt < self._drain_attempts:
                logger.info(
                    "Session %s: drain attempt %d/%d failed, retrying in %.1fs",
                    self._session_id,
                    attempt,
                    self._drain_attempts,
                    self._flush_delay,
                )
                await asyncio.sleep(self._flush_delay)

        if ok and self._record_id is not None:
            try:
                await self._store.mark_complete(self._record_id)
            except Exception as e:
                logger.warning("Session %s: could not mark transcript %s complete: %s", self._session_id, self._record_id, e)
                ok = False

        if self._pending:
            leftover, self._pending = self._pending, []
            await self._spill.spill(self._session_id, self._record_id, leftover)
        self._closed = True
        return ok

    def _schedule(self, delay: float) -> None:
        if self._draining:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn_flush()

    def _spawn_flush(self) -> None:
        task = asyncio.get_running_loop().create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _ensure_record_locked(self) -> None:
        if self._record_id is not None:
            return
        if self._create_record is None:
            raise StoreError("No transcript record and no way to create one")
        self._record_id = await self._create_record()

    async def _flush_locked(self, ensure_record: bool = False) -> bool:
        if not self._pending:
            if not ensure_record or self._record_id is not None:
                return True
            try:
                await self._ensure_record_locked()
            except Exception as e:
                self.failed_attempts += 1
                logger.warning("Session %s: transcript record creation failed: %s", self._session_id, e)
                return False
            return True

        snapshot, self._pending = self._pending, []
        saved = False
        try:
            await self._ensure_record_locked()
            await self._store.append_chunks(self._record_id, snapshot)
            saved = True
        except Exception as e:
            self.failed_attempts += 1
            logger.warning(
                "Session %s: failed to save %d chunks, will retry: %s",
                self._session_id,
                len(snapshot),
                e,
            )
            return False
        finally:
            if not saved:
                # Put the snapshot back ahead of anything enqueued during the attempt
                self._pending[:0] = snapshot
                self._schedule(self._flush_delay)
        self.persisted_count += len(snapshot)
        if not self._pending:
            self._cancel_timer()
        return True

"""
In-memory transcript store: offline/dev mode and test double.

Nothing is durable. fail_next() makes the next N primitive calls raise StoreError,
which is how tests simulate an unavailable store.
"""
from __future__ import annotations

import copy
import logging
from typing import Any

from scribe.errors import StoreError
from scribe.storage.base import Record, TranscriptStore, utc_now_iso

logger = logging.getLogger(__name__)


class InMemoryTranscriptStore(TranscriptStore):
    name = "memory"

    def __init__(self) -> None:
        self._rows: dict[int, Record] = {}
        self._next_id = 1
        self._failures_left = 0
        self._failure_message = "store unavailable"
        self.calls: list[str] = []

    def fail_next(self, count: int = 1, message: str = "store unavailable") -> None:
        self._failures_left = count
        self._failure_message = message

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self._failures_left > 0:
            self._failures_left -= 1
            raise StoreError(self._failure_message)

    @property
    def rows(self) -> dict[int, Record]:
        return self._rows

    async def _insert(self, row: Record) -> Record:
        self._check("insert")
        record_id = self._next_id
        self._next_id += 1
        stored = {**copy.deepcopy(row), "id": record_id, "created_at": utc_now_iso(), "completed_at": None}
        self._rows[record_id] = stored
        logger.debug("[memory] Inserted record with id %s", record_id)
        return copy.deepcopy(stored)

    async def _fetch(self, record_id: int) -> Record | None:
        self._check("fetch")
        row = self._rows.get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def _fetch_latest(self, user_id: str) -> Record | None:
        self._check("fetch_latest")
        candidates = [r for r in self._rows.values() if r.get("user_id") == user_id]
        if not candidates:
            return None
        latest = max(candidates, key=lambda r: (r["created_at"], r["id"]))
        return copy.deepcopy(latest)

    async def _update(self, record_id: int, patch: dict[str, Any]) -> None:
        self._check("update")
        row = self._rows.get(record_id)
        if row is None:
            raise StoreError(f"Transcript record {record_id} not found")
        row.update(copy.deepcopy(patch))

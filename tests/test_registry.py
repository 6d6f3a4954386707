"""Tests for the session registry."""
from __future__ import annotations

import pytest
from conftest import FakeTransportFactory

from scribe.session import RecordingSession, SessionState
from scribe.session_registry import SessionRegistry, generate_session_id


def make(session_id, store, recorder, settings, spill_writer) -> RecordingSession:
    return RecordingSession(session_id, "user-1", store, recorder, FakeTransportFactory(), settings, spill_writer)


class TestSessionRegistry:
    def test_session_ids_unique(self) -> None:
        ids = {generate_session_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(i) == 12 for i in ids)

    async def test_register_get_release(self, store, recorder, settings, spill_writer) -> None:
        registry = SessionRegistry()
        session = make("a", store, recorder, settings, spill_writer)
        registry.register(session)
        assert registry.get("a") is session
        assert "a" in registry and len(registry) == 1
        with pytest.raises(ValueError):
            registry.register(session)
        assert registry.release("a")
        assert not registry.release("a")
        assert registry.get("a") is None

    async def test_close_all_drains_live_sessions(self, store, recorder, settings, spill_writer) -> None:
        registry = SessionRegistry()
        sessions = [make(sid, store, recorder, settings, spill_writer) for sid in ("a", "b")]
        for s in sessions:
            registry.register(s)
            await s.start()
        await registry.close_all()
        assert len(registry) == 0
        assert all(s.state is SessionState.CLOSED for s in sessions)
        assert all(row["completed_at"] is not None for row in store.rows.values())

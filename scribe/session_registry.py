"""
In-memory registry of live recording sessions. session_id is generated on the
backend when the WebSocket connects.

Held on app.state (one per application), never as module state, so tests and
multiple apps in one process stay independent.
"""
from __future__ import annotations

import logging
import uuid
from typing import Iterator, Optional

from scribe.session import RecordingSession

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Generate a new session_id (UUID hex, 12 chars). Backend only."""
    return uuid.uuid4().hex[:12]


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, RecordingSession] = {}

    def register(self, session: RecordingSession) -> None:
        if session.session_id in self._sessions:
            raise ValueError(f"Session {session.session_id} already registered")
        self._sessions[session.session_id] = session
        logger.info("Session %s registered (user=%s, open sessions: %d)", session.session_id, session.user_id, len(self))

    def get(self, session_id: str) -> Optional[RecordingSession]:
        """Return the session or None if not found."""
        return self._sessions.get(session_id)

    def release(self, session_id: str) -> bool:
        """Remove session. Return True if it existed."""
        if session_id in self._sessions:
            del self._sessions[session_id]
            logger.info("Session %s released (open sessions: %d)", session_id, len(self))
            return True
        return False

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[RecordingSession]:
        return iter(list(self._sessions.values()))

    async def close_all(self) -> None:
        """Application shutdown: stop and drain every session, then forget them."""
        for session in list(self._sessions.values()):
            try:
                await session.close()
            except Exception:
                logger.exception("Session %s: close failed during shutdown", session.session_id)
            self.release(session.session_id)

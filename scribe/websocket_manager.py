"""
WebSocketManager: one WebSocket = one RecordingSession.

Frames from the client:
- binary: PCM 16-bit mono 16kHz, forwarded to the session as-is;
- text: JSON control message (start_recording, stop_recording,
  set_patient_metadata, ping). Malformed or unknown messages get an `error`
  reply; the connection stays open.

Messages are handled one at a time in arrival order. start_recording only
claims the session; the upstream connect runs in the background so pings,
stop_recording and audio (dropped until the stream is live) are still read.
When the socket goes away the session is stopped and drained exactly like
stop_recording, then released.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from scribe.asr.base import TransportFactory
from scribe.config import Settings, get_settings
from scribe.errors import ProtocolError
from scribe.schemas.messages import (
    Connected,
    ErrorMessage,
    Ping,
    Pong,
    SetPatientMetadata,
    StartRecording,
    Status,
    StopRecording,
    parse_client_message,
)
from scribe.session import RecordingSession
from scribe.session_registry import SessionRegistry, generate_session_id
from scribe.storage.base import TranscriptStore

logger = logging.getLogger(__name__)


class WebSocketManager:
    def __init__(
        self,
        websocket: WebSocket,
        registry: SessionRegistry,
        store: TranscriptStore,
        transport_factory: TransportFactory,
        user_id: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._ws = websocket
        self._registry = registry
        self._settings = settings or get_settings()
        self._closed = False
        self._session = RecordingSession(
            session_id=generate_session_id(),
            user_id=user_id or self._settings.DEFAULT_USER_ID,
            store=store,
            send=self._send_message,
            transport_factory=transport_factory,
            settings=self._settings,
        )

    @property
    def session(self) -> RecordingSession:
        return self._session

    async def _send_message(self, msg: BaseModel) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(msg.model_dump_json())
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug("Session %s: client gone, dropping %s: %s", self._session.session_id, type(msg).__name__, e)
            self._closed = True

    async def _handle_control(self, raw: str) -> None:
        try:
            message = parse_client_message(raw)
        except ProtocolError as e:
            logger.info("Session %s: rejected client message: %s", self._session.session_id, e)
            await self._send_message(ErrorMessage(error=str(e)))
            return

        if isinstance(message, StartRecording):
            # Connecting can take seconds; keep reading frames meanwhile
            self._session.start_soon(patient_code=message.patient_code, patient_uuid=message.patient_uuid)
        elif isinstance(message, StopRecording):
            if not await self._session.stop():
                await self._send_message(ErrorMessage(error="Not recording"))
        elif isinstance(message, SetPatientMetadata):
            await self._session.set_patient(
                patient_code=message.patient_code,
                patient_uuid=message.patient_uuid,
                metadata=message.metadata,
            )
        elif isinstance(message, Ping):
            await self._send_message(Pong(timestamp=int(time.time() * 1000)))

    async def run(self) -> None:
        """Main loop: receive frames until the client disconnects, then tear down."""
        session = self._session
        self._registry.register(session)
        await self._send_message(Connected(session_id=session.session_id, user_id=session.user_id))
        await self._send_message(Status(source="backend", state="ready"))
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except (WebSocketDisconnect, RuntimeError):
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is not None:
                    await session.handle_audio(data)
                    continue
                text = msg.get("text")
                if text is not None:
                    await self._handle_control(text)
        finally:
            self._closed = True
            await session.close()
            self._registry.release(session.session_id)

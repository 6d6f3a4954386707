"""
FastAPI app: WebSocket endpoint for live, speaker-attributed transcription.

Client connects to /ws?userId=<id>, sends JSON control messages and binary PCM
16-bit mono 16kHz. Server responds with JSON events:
{ "type": "connected" | "status" | "recording_started" | "recording_stopped" |
          "transcript" | "chunk" | "error" | "pong", ... }

HTTP: /health, /transcripts/{id}, /patient/current?userId=<id>.
"""
from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket

from scribe.asr.base import TransportFactory
from scribe.asr.deepgram import DeepgramTransport
from scribe.config import Settings, get_settings
from scribe.errors import StoreError
from scribe.schemas.http import CurrentPatientResponse, HealthResponse, TranscriptRecord
from scribe.session_registry import SessionRegistry
from scribe.storage import create_transcript_store
from scribe.storage.base import TranscriptStore
from scribe.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)

_NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "websockets", "postgrest", "supabase")


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Root logger: stdout handler, plus a file handler when LOG_FILE is set."""
    settings = settings or get_settings()
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    formatter = logging.Formatter("%(asctime)s [%(levelname)-8s] %(name)s: %(message)s")

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(formatter)
    root.addHandler(ch)

    if settings.LOG_FILE:
        try:
            log_dir = os.path.dirname(settings.LOG_FILE)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            fh = logging.FileHandler(settings.LOG_FILE, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError as e:
            logger.warning("File logging disabled, cannot open %s: %s", settings.LOG_FILE, e)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logger.info("Logging configured (level=%s)", logging.getLevelName(level))
    return root


def create_app(
    store: Optional[TranscriptStore] = None,
    transport_factory: Optional[TransportFactory] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application. store / transport_factory default to the configured
    backends (STORE_BACKEND, Deepgram); tests pass in-memory and fake ones.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        if settings is None:
            configure_logging(cfg)
        app.state.settings = cfg
        app.state.store = store or create_transcript_store(cfg)
        app.state.transport_factory = transport_factory or DeepgramTransport
        app.state.registry = SessionRegistry()
        if not cfg.DEEPGRAM_API_KEY and transport_factory is None:
            logger.warning("DEEPGRAM_API_KEY not set; start_recording will fail until it is configured")
        logger.info("Transcription service started (store=%s)", app.state.store.name)
        yield
        # Shutdown: drain whatever is still recording
        await app.state.registry.close_all()
        logger.info("Transcription service stopped")

    app = FastAPI(
        title="Live Clinical Transcription",
        description="WebSocket streaming STT with speaker chunking and buffered persistence",
        lifespan=lifespan,
    )

    @app.websocket("/ws")
    async def websocket_transcribe(
        websocket: WebSocket,
        user_id: Optional[str] = Query(None, alias="userId"),
    ) -> None:
        """
        WebSocket: client sends JSON control messages and raw PCM 16-bit mono 16kHz (binary).
        Server sends JSON events (see module docstring).
        """
        await websocket.accept()
        state = websocket.app.state
        manager = WebSocketManager(
            websocket,
            registry=state.registry,
            store=state.store,
            transport_factory=state.transport_factory,
            user_id=user_id,
            settings=state.settings,
        )
        await manager.run()

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        state = request.app.state
        return HealthResponse(status="ok", sessions=len(state.registry), store=state.store.name)

    @app.get("/transcripts/{transcript_id}", response_model=TranscriptRecord)
    async def get_transcript(transcript_id: int, request: Request) -> TranscriptRecord:
        try:
            row = await request.app.state.store.get_record(transcript_id)
        except StoreError as e:
            logger.warning("Transcript %s lookup failed: %s", transcript_id, e)
            raise HTTPException(status_code=502, detail="Transcript store unavailable")
        if row is None:
            raise HTTPException(status_code=404, detail="Transcript not found")
        return TranscriptRecord.model_validate(row)

    @app.get("/patient/current", response_model=CurrentPatientResponse)
    async def current_patient(
        request: Request,
        user_id: Optional[str] = Query(None, alias="userId"),
    ) -> CurrentPatientResponse:
        """Patient of the user's latest transcript record."""
        state = request.app.state
        uid = user_id or state.settings.DEFAULT_USER_ID
        try:
            row = await state.store.read_latest_record(uid)
        except StoreError as e:
            logger.warning("Latest transcript lookup for user %s failed: %s", uid, e)
            raise HTTPException(status_code=502, detail="Transcript store unavailable")
        if row is None:
            raise HTTPException(status_code=404, detail="No transcript for this user")
        return CurrentPatientResponse(
            transcript_id=row["id"],
            patient_code=row.get("patient_code"),
            patient_uuid=row.get("patient_uuid"),
            created_at=row.get("created_at"),
            completed=row.get("completed_at") is not None,
        )

    return app


app = create_app()

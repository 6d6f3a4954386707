"""
RecordingSession: one client connection's transcription pipeline.

Wires TranscriptionController -> ChunkAggregator -> PersistenceBuffer and fans
events out to the client:

- every upstream result is sent to the client immediately as a `transcript`
  message, before and independent of persistence;
- final results feed the aggregator; each finalized chunk is appended to the
  session transcript, enqueued for persistence and announced as `chunk`;
- utterance end / disconnect force-flush the open chunk;
- stop (client stop, upstream close, or connection close) disconnects upstream,
  flushes, then drains the buffer.

A connection can record more than once: every start builds a fresh controller,
aggregator and buffer (a controller never reconnects after CLOSED/FAILED).
The upstream connect runs as a task; stop() during CONNECTING cancels it, and
the transcript record is only created once the stream is live.
All methods run on the connection's own event-loop flow; nothing is shared
with other sessions except the store.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from scribe.asr.base import TransportFactory
from scribe.asr.controller import ControllerCallbacks, TranscriptionController
from scribe.audio import AudioReceiver, LocalVadMonitor
from scribe.config import Settings, get_settings
from scribe.errors import StoreError
from scribe.patient import PatientContext
from scribe.schemas.messages import (
    ChunkMessage,
    ErrorMessage,
    RecordingStarted,
    RecordingStopped,
    Status,
    TranscriptUpdate,
)
from scribe.storage.base import TranscriptStore
from scribe.storage.buffer import PersistenceBuffer
from scribe.storage.spill import SpillWriterBase, create_spill_writer
from scribe.transcript.aggregator import ChunkAggregator
from scribe.transcript.models import Chunk, flatten_chunks
from scribe.transcript.normalizer import NormalizedResult

logger = logging.getLogger(__name__)

MessageSender = Callable[[BaseModel], Awaitable[None]]


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    DRAINING = "draining"
    CLOSED = "closed"
    FAILED = "failed"


class RecordingSession:
    def __init__(
        self,
        session_id: str,
        user_id: str,
        store: TranscriptStore,
        send: MessageSender,
        transport_factory: TransportFactory,
        settings: Optional[Settings] = None,
        spill_writer: Optional[SpillWriterBase] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.session_id = session_id
        self.user_id = user_id
        self.patient = PatientContext()
        self._store = store
        self._send = send
        self._transport_factory = transport_factory
        self._spill = spill_writer or create_spill_writer(self._settings)

        self._state = SessionState.IDLE
        self._controller: Optional[TranscriptionController] = None
        self._aggregator: Optional[ChunkAggregator] = None
        self._buffer: Optional[PersistenceBuffer] = None
        self._chunks: list[Chunk] = []
        self._stop_lock = asyncio.Lock()
        self._teardown: Optional[asyncio.Task[Any]] = None
        self._start_task: Optional[asyncio.Task[bool]] = None

        self._receiver: Optional[AudioReceiver] = None
        self._vad: Optional[LocalVadMonitor] = None
        if self._settings.LOCAL_VAD_ENABLED:
            self._receiver = AudioReceiver(self._settings.FRAME_BYTES)
            self._vad = LocalVadMonitor(
                aggressiveness=self._settings.LOCAL_VAD_AGGRESSIVENESS,
                silence_ms=self._settings.LOCAL_VAD_SILENCE_MS,
            )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def record_id(self) -> Optional[int]:
        return self._buffer.record_id if self._buffer is not None else None

    @property
    def chunks(self) -> list[Chunk]:
        return list(self._chunks)

    @property
    def pending_chunks(self) -> list[Chunk]:
        return self._buffer.pending if self._buffer is not None else []

    @property
    def full_text(self) -> str:
        return flatten_chunks(self._chunks)

    @property
    def controller(self) -> Optional[TranscriptionController]:
        return self._controller

    @property
    def is_recording(self) -> bool:
        return self._state in (SessionState.CONNECTING, SessionState.LIVE)

    async def start(self, patient_code: Optional[str] = None, patient_uuid: Optional[str] = None) -> bool:
        """Start recording and wait until the session is live or has failed. False if it did not go live."""
        task = self.start_soon(patient_code, patient_uuid)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        return not task.cancelled() and task.result()

    def start_soon(self, patient_code: Optional[str] = None, patient_uuid: Optional[str] = None) -> asyncio.Task[bool]:
        """
        Claim the session and connect upstream in the background.

        The session is CONNECTING (or the start is rejected) by the time this
        returns, so the caller can keep reading client frames: audio is dropped
        until the stream is live and stop() cancels the pending connect.
        """
        error = self._prepare_start(patient_code, patient_uuid)
        if error is not None:
            task = asyncio.create_task(self._reject_start(error))
        else:
            task = asyncio.create_task(self._run_start())
            self._start_task = task
        task.add_done_callback(self._log_task_failure)
        return task

    def _prepare_start(self, patient_code: Optional[str], patient_uuid: Optional[str]) -> Optional[str]:
        if self.is_recording:
            return "Already recording"
        if self._state is SessionState.DRAINING:
            return "Previous recording is still being saved"

        self.patient.update(patient_code=patient_code, patient_uuid=patient_uuid)
        self.patient.ensure_code()
        self._state = SessionState.CONNECTING
        self._chunks = []
        self._aggregator = ChunkAggregator(self._settings.CHUNK_MAX_DURATION_SECONDS)
        self._buffer = PersistenceBuffer(
            self._store,
            self.session_id,
            create_record=self._create_record,
            high_water_mark=self._settings.PERSIST_HIGH_WATER_MARK,
            flush_delay=self._settings.PERSIST_FLUSH_DELAY_SECONDS,
            drain_attempts=self._settings.PERSIST_DRAIN_ATTEMPTS,
            spill_writer=self._spill,
        )
        self._controller = TranscriptionController(
            self._transport_factory,
            ControllerCallbacks(
                on_transcript=self._on_transcript,
                on_utterance_end=self._on_utterance_end,
                on_close=self._on_upstream_close,
                on_error=self._on_upstream_error,
            ),
            session_id=self.session_id,
            settings=self._settings,
        )
        if self._vad is not None:
            self._vad.reset()
        if self._receiver is not None:
            self._receiver.reset()
        return None

    async def _reject_start(self, error: str) -> bool:
        await self._send(ErrorMessage(error=error))
        return False

    async def _run_start(self) -> bool:
        assert self._controller is not None and self._buffer is not None
        await self._send(Status(source="backend", state="connecting"))
        result = await self._controller.connect()
        if not result.ok:
            self._state = SessionState.FAILED
            logger.error("Session %s: transcription unavailable: %s", self.session_id, result.reason)
            await self._send(Status(source="deepgram", state="failed", message=result.reason))
            await self._send(ErrorMessage(error=f"Transcription connection failed: {result.reason}"))
            return False

        # The record is created only once transcription is actually running
        record_id = await self._buffer.ensure_record()
        if record_id is None:
            # Keep transcribing; the buffer retries creation with the first flush
            await self._send(
                Status(source="store", state="unavailable", message="Transcript record not created yet; will retry")
            )

        self._state = SessionState.LIVE
        code = self.patient.patient_code
        logger.info(
            "Session %s: recording started (transcript=%s, patient_code=%s)",
            self.session_id,
            self.record_id,
            code,
        )
        await self._send(Status(source="deepgram", state="connected"))
        await self._send(RecordingStarted(transcript_id=self.record_id, patient_code=code, vad_events=result.vad_events))
        return True

    async def stop(self) -> bool:
        """Disconnect upstream, flush the open chunk and drain persistence. False if not recording."""
        async with self._stop_lock:
            if not self.is_recording:
                return False
            aborted = await self._cancel_start()
            self._state = SessionState.DRAINING
            await self._send(Status(source="backend", state="draining"))
            if self._controller is not None:
                await self._controller.disconnect()
            # Results that arrived while the stream was closing may have left an open chunk
            await self._emit_chunks(self._aggregator.flush() if self._aggregator else [])
            persisted = True
            buffer = self._buffer
            if buffer is not None and not (aborted and buffer.record_id is None and not buffer.pending):
                persisted = await buffer.drain()
            self._state = SessionState.CLOSED
            logger.info(
                "Session %s: recording stopped (transcript=%s, chunks=%d, persisted=%s)",
                self.session_id,
                self.record_id,
                len(self._chunks),
                persisted,
            )
            await self._send(RecordingStopped(transcript_id=self.record_id, persisted=persisted))
            return True

    async def set_patient(
        self,
        patient_code: Optional[str] = None,
        patient_uuid: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.patient.update(patient_code=patient_code, patient_uuid=patient_uuid, metadata=metadata)
        record_id = self.record_id
        if record_id is not None:
            try:
                await self._store.update_patient(record_id, patient_code, patient_uuid, metadata)
            except StoreError as e:
                logger.warning("Session %s: patient update on transcript %s failed: %s", self.session_id, record_id, e)
                await self._send(Status(source="store", state="error", message=str(e)))
                return
        await self._send(Status(source="backend", state="patient_updated", message=self.patient.patient_code or None))

    async def handle_audio(self, data: bytes) -> None:
        """Forward client PCM upstream; dropped when not live. Local VAD status is advisory."""
        if self._controller is not None:
            self._controller.send_audio(data)
        if self._vad is None or self._receiver is None or not self.is_recording:
            return
        self._receiver.feed(data)
        for frame in self._receiver.drain_frames():
            transition = self._vad.push(frame)
            if transition is not None:
                await self._send(Status(source="vad", state=transition))

    async def close(self) -> None:
        """Connection closed: same teardown as stop, then the session is done."""
        await self.stop()
        if self._teardown is not None and not self._teardown.done():
            # Failures are logged by the task's done callback
            await asyncio.wait({self._teardown})
        if self._state is SessionState.IDLE:
            self._state = SessionState.CLOSED

    async def _cancel_start(self) -> bool:
        """Cancel a connect still in flight. True if one was cancelled."""
        task = self._start_task
        if task is None or task.done() or task is asyncio.current_task():
            return False
        if self._state is SessionState.CONNECTING:
            task.cancel()
        await asyncio.wait({task})
        if task.cancelled():
            logger.info("Session %s: stopped while connecting", self.session_id)
        return task.cancelled()

    def _log_task_failure(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session %s: background task failed", self.session_id, exc_info=exc)

    async def _create_record(self) -> int:
        return await self._store.create_record(
            self.user_id,
            self.patient.ensure_code(),
            self.patient.patient_uuid,
        )

    async def _emit_chunks(self, chunks: list[Chunk]) -> None:
        for chunk in chunks:
            self._chunks.append(chunk)
            if self._buffer is not None:
                self._buffer.enqueue(chunk)
            await self._send(
                ChunkMessage(
                    speaker=chunk.speaker,
                    text=chunk.text,
                    start=chunk.start,
                    end=chunk.end,
                    word_count=chunk.word_count,
                )
            )

    async def _on_transcript(self, result: NormalizedResult) -> None:
        await self._send(
            TranscriptUpdate(
                is_final=result.is_final,
                speech_final=result.speech_final,
                speaker=result.speaker,
                text=result.transcript,
                start=result.start,
                end=result.end,
                confidence=result.confidence,
            )
        )
        if result.is_final and self._aggregator is not None:
            await self._emit_chunks(self._aggregator.ingest(result.words, is_final=result.speech_final))

    async def _on_utterance_end(self) -> None:
        if self._aggregator is not None:
            await self._emit_chunks(self._aggregator.flush())

    async def _on_upstream_close(self) -> None:
        await self._send(Status(source="deepgram", state="closed"))
        # Runs outside the transport's reader so the reader can finish
        self._teardown = asyncio.create_task(self.stop())
        self._teardown.add_done_callback(self._log_task_failure)

    async def _on_upstream_error(self, reason: str) -> None:
        await self._send(ErrorMessage(error=reason))

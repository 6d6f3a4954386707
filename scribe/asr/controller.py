"""
TranscriptionController: owns the upstream STT connection of one session.

State machine (terminal: CLOSED, FAILED; a new session needs a new controller):

    IDLE -> CONNECTING -> LIVE -> CLOSED
    CONNECTING -> IDLE        (first attempt failed, retrying without VAD events)
    any -> FAILED             (both attempts failed)

connect() tries with VAD events first and, if the stream never opens (error or
connect timeout), once more with VAD events off. VAD events are an optional
upstream feature; their failure must not block transcription.

send_audio() is synchronous: frames go onto a bounded queue drained by one
sender task. Frames arriving while not LIVE are dropped, not buffered.

Events raised to the owner (ControllerCallbacks):
- on_transcript(result): every non-empty "Results" message, interim or final
- on_utterance_end(): upstream utterance end; also raised by disconnect() so the
  owner force-flushes its aggregator before the stream closes
- on_close(): the upstream closed the stream on its own
- on_error(reason): advisory; does not close anything
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from scribe.asr.base import StreamOptions, TranscriptionTransport, TransportFactory
from scribe.config import Settings, get_settings
from scribe.errors import TranscriptionError
from scribe.transcript.normalizer import NormalizedResult, normalize_result

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass
class ConnectResult:
    ok: bool
    reason: Optional[str] = None
    vad_events: bool = False


@dataclass
class ControllerCallbacks:
    on_transcript: Callable[[NormalizedResult], Awaitable[None]]
    on_utterance_end: Callable[[], Awaitable[None]]
    on_close: Callable[[], Awaitable[None]]
    on_error: Callable[[str], Awaitable[None]]


def default_stream_options(settings: Optional[Settings] = None) -> StreamOptions:
    settings = settings or get_settings()
    return StreamOptions(
        model=settings.DEEPGRAM_MODEL,
        language=settings.DEEPGRAM_LANGUAGE,
        sample_rate=settings.SAMPLE_RATE,
        channels=settings.CHANNELS,
        utterance_end_ms=settings.DEEPGRAM_UTTERANCE_END_MS,
        vad_events=settings.DEEPGRAM_ENABLE_VAD,
    )


class TranscriptionController:
    def __init__(
        self,
        transport_factory: TransportFactory,
        callbacks: ControllerCallbacks,
        session_id: str = "",
        options: Optional[StreamOptions] = None,
        prefer_vad: Optional[bool] = None,
        connect_timeout: Optional[float] = None,
        close_timeout: Optional[float] = None,
        queue_frames: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self._transport_factory = transport_factory
        self._callbacks = callbacks
        self._session_id = session_id
        self._options = options or default_stream_options(settings)
        self._prefer_vad = settings.DEEPGRAM_ENABLE_VAD if prefer_vad is None else prefer_vad
        self._connect_timeout = connect_timeout if connect_timeout is not None else settings.STT_CONNECT_TIMEOUT_SECONDS
        self._close_timeout = close_timeout if close_timeout is not None else settings.STT_CLOSE_TIMEOUT_SECONDS
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue(
            maxsize=queue_frames or settings.STT_AUDIO_QUEUE_FRAMES
        )

        self._state = ControllerState.IDLE
        self._transport: Optional[TranscriptionTransport] = None
        self._sender: Optional[asyncio.Task[Any]] = None
        self._closing = False
        self._vad_events = False
        self.dropped_frames = 0

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def transport(self) -> Optional[TranscriptionTransport]:
        """Transport of the live connection; None until connected."""
        return self._transport

    @property
    def vad_events(self) -> bool:
        return self._vad_events

    @property
    def is_live(self) -> bool:
        return self._state is ControllerState.LIVE and not self._closing

    async def connect(self) -> ConnectResult:
        if self._state is not ControllerState.IDLE:
            return ConnectResult(ok=False, reason=f"controller is {self._state.value}")

        attempts = [True, False] if self._prefer_vad else [False]
        reason = "no connection attempt made"
        for use_vad in attempts:
            self._state = ControllerState.CONNECTING
            label = "primary" if use_vad else "fallback-no-vad" if self._prefer_vad else "primary-no-vad"
            logger.info("Session %s: connecting to STT (%s)", self._session_id, label)
            transport = self._transport_factory()
            options = replace(self._options, vad_events=use_vad)
            try:
                await asyncio.wait_for(
                    transport.open(options, self._handle_message, self._handle_error, self._handle_close),
                    timeout=self._connect_timeout,
                )
            except asyncio.CancelledError:
                await self._discard(transport)
                self._state = ControllerState.IDLE
                raise
            except asyncio.TimeoutError:
                reason = f"STT connection timeout ({self._connect_timeout:g}s)"
            except TranscriptionError as e:
                reason = str(e) or type(e).__name__
            else:
                if self._closing:
                    # disconnect() won the race; never go live afterwards
                    await self._discard(transport)
                    self._state = ControllerState.CLOSED
                    return ConnectResult(ok=False, reason="disconnected while connecting")
                self._transport = transport
                self._vad_events = use_vad
                self._state = ControllerState.LIVE
                self._sender = asyncio.create_task(self._pump())
                logger.info(
                    "Session %s: STT connected (%s)%s",
                    self._session_id,
                    label,
                    " with VAD" if use_vad else " without VAD",
                )
                return ConnectResult(ok=True, vad_events=use_vad)

            logger.warning("Session %s: STT connection (%s) failed: %s", self._session_id, label, reason)
            await self._discard(transport)
            if self._closing:
                self._state = ControllerState.CLOSED
                return ConnectResult(ok=False, reason="disconnected while connecting")
            self._state = ControllerState.IDLE

        self._state = ControllerState.FAILED
        return ConnectResult(ok=False, reason=reason)

    def send_audio(self, data: bytes) -> bool:
        """Queue one frame for upstream. False (frame dropped) when not live or the queue is full."""
        if not self.is_live:
            self.dropped_frames += 1
            return False
        try:
            self._queue.put_nowait(bytes(data))
        except asyncio.QueueFull:
            self.dropped_frames += 1
            if self.dropped_frames % 100 == 1:
                logger.warning("Session %s: audio queue full, dropping frames (%d so far)", self._session_id, self.dropped_frames)
            return False
        return True

    async def disconnect(self) -> None:
        """Force-flush via on_utterance_end, send queued audio, close upstream. Idempotent."""
        if self._closing or self._state in (ControllerState.CLOSED, ControllerState.FAILED):
            return
        self._closing = True
        await self._callbacks.on_utterance_end()
        if self._sender is not None:
            await self._stop_sender()
        if self._transport is not None:
            await self._discard(self._transport)
        self._state = ControllerState.CLOSED
        logger.info("Session %s: STT disconnected", self._session_id)

    async def _pump(self) -> None:
        """Drain the audio queue into the transport. None = stop."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                break
            if self._transport is None:
                continue
            try:
                await self._transport.send(frame)
            except TranscriptionError as e:
                logger.warning("Session %s: audio send failed: %s", self._session_id, e)
                await self._callbacks.on_error(str(e))
                break

    async def _stop_sender(self) -> None:
        assert self._sender is not None
        if not self._sender.done():
            try:
                await asyncio.wait_for(self._queue.put(None), timeout=self._close_timeout)
                await asyncio.wait_for(self._sender, timeout=self._close_timeout)
            except asyncio.TimeoutError:
                logger.warning("Session %s: audio sender did not finish; cancelling", self._session_id)
                self._sender.cancel()
                try:
                    await self._sender
                except asyncio.CancelledError:
                    pass
        self._sender = None

    async def _discard(self, transport: TranscriptionTransport) -> None:
        try:
            await transport.finish()
        except TranscriptionError as e:
            logger.warning("Session %s: STT teardown failed: %s", self._session_id, e)

    async def _handle_message(self, message: dict[str, Any]) -> None:
        mtype = message.get("type")
        if mtype == "Results":
            result = normalize_result(message)
            if result is not None:
                await self._callbacks.on_transcript(result)
        elif mtype == "UtteranceEnd":
            logger.debug("Session %s: utterance end", self._session_id)
            await self._callbacks.on_utterance_end()
        elif mtype == "SpeechStarted":
            logger.debug("Session %s: upstream speech started", self._session_id)
        elif mtype == "Metadata":
            logger.debug("Session %s: upstream metadata request_id=%s", self._session_id, message.get("request_id"))
        elif mtype == "Error":
            reason = message.get("description") or message.get("message") or "upstream error"
            await self._handle_error(str(reason))
        else:
            logger.debug("Session %s: ignoring upstream message type=%s", self._session_id, mtype)

    async def _handle_error(self, reason: str) -> None:
        if self._state in (ControllerState.CLOSED, ControllerState.FAILED):
            return
        logger.warning("Session %s: STT error: %s", self._session_id, reason)
        await self._callbacks.on_error(reason)

    async def _handle_close(self) -> None:
        if self._closing or self._state is not ControllerState.LIVE:
            return
        # Upstream hung up on its own
        self._closing = True
        self._state = ControllerState.CLOSED
        if self._sender is not None:
            self._sender.cancel()
            self._sender = None
        logger.info("Session %s: STT stream closed by upstream", self._session_id)
        await self._callbacks.on_close()

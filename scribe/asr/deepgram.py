"""
DeepgramTransport: Deepgram live transcription over a raw WebSocket.

- Connects to DEEPGRAM_URL with the stream options as query parameters and
  `Authorization: Token <key>`.
- Binary frames out (PCM linear16), JSON text frames in. Every decoded JSON
  object is handed to on_message unchanged; interpreting "Results",
  "UtteranceEnd" and friends is the controller's job.
- finish() sends {"type": "CloseStream"} so Deepgram flushes its last results,
  then waits (bounded) for the server to close.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from scribe.asr.base import CloseHandler, ErrorHandler, MessageHandler, StreamOptions, TranscriptionTransport
from scribe.config import get_settings
from scribe.errors import TranscriptionConnectError, TranscriptionError

logger = logging.getLogger(__name__)

_CLOSE_STREAM = json.dumps({"type": "CloseStream"})


class DeepgramTransport(TranscriptionTransport):
    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        close_timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.DEEPGRAM_API_KEY
        self._url = url or settings.DEEPGRAM_URL
        self._close_timeout = close_timeout if close_timeout is not None else settings.STT_CLOSE_TIMEOUT_SECONDS
        self._ws: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None
        self._finishing = False

    async def open(
        self,
        options: StreamOptions,
        on_message: MessageHandler,
        on_error: ErrorHandler,
        on_close: CloseHandler,
    ) -> None:
        if not self._api_key:
            raise TranscriptionConnectError("DEEPGRAM_API_KEY not set")
        uri = f"{self._url}?{urlencode(options.to_query())}"
        try:
            self._ws = await connect(
                uri,
                additional_headers={"Authorization": f"Token {self._api_key}"},
                open_timeout=None,  # the controller bounds the whole attempt
            )
        except (OSError, InvalidHandshake, InvalidURI) as e:
            raise TranscriptionConnectError(f"Deepgram connection failed: {e}") from e
        logger.info("Deepgram stream open (model=%s, vad_events=%s)", options.model, options.vad_events)
        self._reader = asyncio.create_task(self._read_loop(on_message, on_error, on_close))

    async def _read_loop(self, on_message: MessageHandler, on_error: ErrorHandler, on_close: CloseHandler) -> None:
        assert self._ws is not None
        try:
            async for raw in self._ws:
                if isinstance(raw, bytes):
                    continue
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Deepgram sent a non-JSON text frame; ignored")
                    continue
                if not isinstance(message, dict):
                    continue
                try:
                    await on_message(message)
                except Exception:
                    logger.exception("Deepgram message handler failed (type=%s)", message.get("type"))
        except ConnectionClosed as e:
            if not self._finishing:
                await on_error(f"Deepgram connection lost: {e}")
        logger.info("Deepgram connection closed")
        await on_close()

    async def send(self, audio: bytes) -> None:
        if self._ws is None:
            raise TranscriptionError("Deepgram stream is not open")
        try:
            await self._ws.send(audio)
        except ConnectionClosed as e:
            raise TranscriptionError(f"Deepgram stream closed: {e}") from e

    async def finish(self) -> None:
        if self._finishing or self._ws is None:
            return
        self._finishing = True
        try:
            await self._ws.send(_CLOSE_STREAM)
        except ConnectionClosed:
            logger.debug("Deepgram already closed before CloseStream")
        if self._reader is not None:
            try:
                await asyncio.wait_for(self._reader, timeout=self._close_timeout)
            except asyncio.TimeoutError:
                logger.warning("Deepgram did not close within %.1fs; closing locally", self._close_timeout)
                self._reader.cancel()
                try:
                    await self._reader
                except asyncio.CancelledError:
                    pass
        await self._ws.close()

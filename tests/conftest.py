"""Shared fixtures: word/result builders, a scripted fake STT transport, a message recorder."""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest
from pydantic import BaseModel

from scribe.asr.base import StreamOptions, TranscriptionTransport
from scribe.config import Settings
from scribe.errors import TranscriptionConnectError
from scribe.storage.memory import InMemoryTranscriptStore
from scribe.storage.spill import SpillWriter
from scribe.transcript.models import Chunk, WordEvent


def word(text: str, start: float, end: float, speaker: int = 0, confidence: float = 0.9) -> WordEvent:
    return WordEvent(text=text, start=start, end=end, speaker=speaker, confidence=confidence)


def chunk(speaker: int, text: str, start: float = 0.0, end: float = 1.0) -> Chunk:
    words = [word(t, start, end, speaker) for t in text.split()]
    return Chunk(speaker=speaker, start=start, end=end, text=text, raw_words=words, finalized=True)


def results_message(
    words: list[tuple[str, float, float, int]],
    is_final: bool = True,
    speech_final: bool = False,
) -> dict[str, Any]:
    """Deepgram-shaped "Results" payload from (text, start, end, speaker) tuples."""
    raw = [
        {"word": w, "punctuated_word": w, "start": s, "end": e, "confidence": 0.95, "speaker": spk}
        for w, s, e, spk in words
    ]
    start = words[0][1] if words else 0.0
    end = words[-1][2] if words else 0.0
    return {
        "type": "Results",
        "is_final": is_final,
        "speech_final": speech_final,
        "start": start,
        "duration": end - start,
        "channel": {
            "alternatives": [
                {"transcript": " ".join(w[0] for w in words), "confidence": 0.95, "words": raw}
            ]
        },
    }


class FakeTransport(TranscriptionTransport):
    """
    Scripted upstream. `script` messages are delivered once the first audio frame
    arrives; `fail_open` makes open() raise; `hang` makes open() never return;
    `open_delay` makes open() take that many seconds.
    """

    def __init__(
        self,
        script: Optional[list[dict[str, Any]]] = None,
        fail_open: bool = False,
        hang: bool = False,
        open_delay: float = 0.0,
    ) -> None:
        self.script = list(script or [])
        self.fail_open = fail_open
        self.hang = hang
        self.open_delay = open_delay
        self.options: Optional[StreamOptions] = None
        self.sent: list[bytes] = []
        self.opened = False
        self.finish_calls = 0
        self._on_message = None
        self._on_error = None
        self._on_close = None

    async def open(self, options, on_message, on_error, on_close) -> None:
        self.options = options
        if self.hang:
            await asyncio.Event().wait()
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open:
            raise TranscriptionConnectError("upstream refused")
        self._on_message, self._on_error, self._on_close = on_message, on_error, on_close
        self.opened = True

    async def send(self, audio: bytes) -> None:
        self.sent.append(audio)
        while self.script:
            await self._on_message(self.script.pop(0))

    async def finish(self) -> None:
        self.finish_calls += 1

    async def emit(self, message: dict[str, Any]) -> None:
        await self._on_message(message)

    async def emit_error(self, reason: str) -> None:
        await self._on_error(reason)

    async def emit_close(self) -> None:
        await self._on_close()


class FakeTransportFactory:
    """Hands out the given transports in order, then plain FakeTransports."""

    def __init__(self, *transports: FakeTransport) -> None:
        self._queue = list(transports)
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = self._queue.pop(0) if self._queue else FakeTransport()
        self.created.append(transport)
        return transport


class MessageRecorder:
    """Stands in for the client socket: collects outbound models."""

    def __init__(self) -> None:
        self.messages: list[BaseModel] = []

    async def __call__(self, msg: BaseModel) -> None:
        self.messages.append(msg)

    def of_type(self, kind: str) -> list[BaseModel]:
        return [m for m in self.messages if getattr(m, "type", None) == kind]

    @property
    def types(self) -> list[str]:
        return [getattr(m, "type", "") for m in self.messages]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        STORE_BACKEND="memory",
        LOCAL_VAD_ENABLED=False,
        PERSIST_FLUSH_DELAY_SECONDS=0.02,
        PERSIST_DRAIN_ATTEMPTS=2,
        SPILL_ENABLED=True,
        SPILL_DIR=str(tmp_path / "spill"),
        STT_CONNECT_TIMEOUT_SECONDS=0.2,
        STT_CLOSE_TIMEOUT_SECONDS=0.2,
        LOG_FILE="",
    )


@pytest.fixture
def store() -> InMemoryTranscriptStore:
    return InMemoryTranscriptStore()


@pytest.fixture
def spill_writer(tmp_path) -> SpillWriter:
    return SpillWriter(str(tmp_path / "spill"))


@pytest.fixture
def recorder() -> MessageRecorder:
    return MessageRecorder()

"""
TranscriptionTransport: abstract bidirectional stream to a live STT provider.

Audio goes in as raw PCM 16-bit mono frames; decoded JSON events come back through
the callbacks given to open(). Implementations: DeepgramTransport. Tests use a
scripted fake.

A transport instance serves one connection attempt; open a new one to reconnect.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]
ErrorHandler = Callable[[str], Awaitable[None]]
CloseHandler = Callable[[], Awaitable[None]]


@dataclass
class StreamOptions:
    """Live-stream request parameters."""

    model: str = "nova-2"
    language: str = "en-US"
    sample_rate: int = 16000
    channels: int = 1
    encoding: str = "linear16"
    utterance_end_ms: int = 1000
    vad_events: bool = True
    diarize: bool = True
    interim_results: bool = True
    punctuate: bool = True
    smart_format: bool = True

    def to_query(self) -> dict[str, str]:
        """Query-string form: booleans as lowercase strings."""
        out: dict[str, str] = {}
        for key, value in self.__dict__.items():
            out[key] = str(value).lower() if isinstance(value, bool) else str(value)
        return out


class TranscriptionTransport(ABC):
    """
    One upstream connection. open() returns once the stream is open or raises
    TranscriptionConnectError. Callbacks run on the event loop, in arrival order.
    """

    @abstractmethod
    async def open(
        self,
        options: StreamOptions,
        on_message: MessageHandler,
        on_error: ErrorHandler,
        on_close: CloseHandler,
    ) -> None:
        ...

    @abstractmethod
    async def send(self, audio: bytes) -> None:
        """Forward one audio frame. Raises TranscriptionError if the stream is gone."""
        ...

    @abstractmethod
    async def finish(self) -> None:
        """Ask the provider to flush and close; return once closed (bounded wait). Idempotent."""
        ...


TransportFactory = Callable[[], TranscriptionTransport]

"""
AudioReceiver: re-frames raw PCM from WebSocket messages.

- Expects PCM 16-bit mono 16kHz.
- Browser clients send whatever buffer size their audio worklet produces; the
  local VAD needs exact 10/20/30 ms frames. feed() buffers, drain_frames() cuts.
- Upstream STT gets the client bytes verbatim; framing here is for VAD only.
"""
from __future__ import annotations

from scribe.config import get_settings


class AudioReceiver:
    """
    Buffers incoming binary messages into fixed-size PCM frames.
    Any remainder is kept for the next call.
    """

    def __init__(self, frame_bytes: int | None = None) -> None:
        settings = get_settings()
        self._frame_bytes = frame_bytes or settings.FRAME_BYTES
        self._buffer = bytearray()
        self.total_bytes = 0

    @property
    def frame_bytes(self) -> int:
        return self._frame_bytes

    def feed(self, data: bytes) -> None:
        """Append raw PCM bytes. Call from WebSocket handler."""
        self._buffer.extend(data)
        self.total_bytes += len(data)

    def drain_frames(self) -> list[bytes]:
        """Cut all complete frames from the buffer; remainder stays buffered."""
        out: list[bytes] = []
        while len(self._buffer) >= self._frame_bytes:
            out.append(bytes(self._buffer[: self._frame_bytes]))
            del self._buffer[: self._frame_bytes]
        return out

    def remaining_bytes(self) -> int:
        """Bytes left in buffer (incomplete frame)."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

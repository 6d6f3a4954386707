"""
LocalVadMonitor: speech/silence status from the client's own audio.

Uses webrtcvad (aggressiveness 0-3) on 20ms frames. The monitor only reports
transitions so the UI can show a "listening / hearing speech" indicator while
upstream results are still in flight. It never gates what is sent upstream.

- silence -> speech after `speech_frames` consecutive speech frames
- speech -> silence after `silence_ms` without a speech frame
"""
from __future__ import annotations

from typing import Optional

import webrtcvad

from scribe.config import get_settings

SPEECH = "speech"
SILENCE = "silence"


class LocalVadMonitor:
    """
    Wraps webrtcvad. Frame must be exactly 10, 20, or 30 ms of 16 kHz mono PCM.
    We use 20ms frames (320 samples = 640 bytes).
    """

    def __init__(
        self,
        aggressiveness: Optional[int] = None,
        silence_ms: Optional[int] = None,
        speech_frames: int = 3,
    ) -> None:
        settings = get_settings()
        level = settings.LOCAL_VAD_AGGRESSIVENESS if aggressiveness is None else aggressiveness
        self._vad = webrtcvad.Vad(min(3, max(0, level)))
        self._frame_bytes = settings.FRAME_BYTES
        self._frame_ms = settings.FRAME_MS
        self._sample_rate = settings.SAMPLE_RATE
        self._silence_frames = max(1, (silence_ms or settings.LOCAL_VAD_SILENCE_MS) // self._frame_ms)
        self._speech_frames = max(1, speech_frames)

        self._state = SILENCE
        self._speech_run = 0
        self._silence_run = 0

    @property
    def state(self) -> str:
        return self._state

    @property
    def frame_bytes(self) -> int:
        return self._frame_bytes

    def is_speech(self, frame: bytes) -> bool:
        """False for frames of the wrong size (webrtcvad would raise)."""
        if len(frame) != self._frame_bytes:
            return False
        return self._vad.is_speech(frame, self._sample_rate)

    def push(self, frame: bytes) -> Optional[str]:
        """Classify one frame. Returns the new state on a transition, else None."""
        if self.is_speech(frame):
            self._speech_run += 1
            self._silence_run = 0
            if self._state == SILENCE and self._speech_run >= self._speech_frames:
                self._state = SPEECH
                return SPEECH
        else:
            self._silence_run += 1
            self._speech_run = 0
            if self._state == SPEECH and self._silence_run >= self._silence_frames:
                self._state = SILENCE
                return SILENCE
        return None

    def reset(self) -> None:
        self._state = SILENCE
        self._speech_run = 0
        self._silence_run = 0

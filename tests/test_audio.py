"""Tests for PCM re-framing and the local VAD status monitor."""
from __future__ import annotations

from scribe.audio import SILENCE, SPEECH, AudioReceiver, LocalVadMonitor


class TestAudioReceiver:
    def test_frames_and_remainder(self) -> None:
        rx = AudioReceiver(frame_bytes=4)
        rx.feed(b"abcdefghij")
        assert rx.drain_frames() == [b"abcd", b"efgh"]
        assert rx.remaining_bytes() == 2
        rx.feed(b"kl")
        assert rx.drain_frames() == [b"ijkl"]
        assert rx.total_bytes == 12

    def test_reset(self) -> None:
        rx = AudioReceiver(frame_bytes=4)
        rx.feed(b"ab")
        rx.reset()
        assert rx.remaining_bytes() == 0


class TestLocalVadMonitor:
    def test_silence_frames_no_transition(self) -> None:
        vad = LocalVadMonitor(aggressiveness=2, silence_ms=100)
        assert all(vad.push(b"\x00" * vad.frame_bytes) is None for _ in range(20))
        assert vad.state == SILENCE

    def test_wrong_frame_size_is_not_speech(self) -> None:
        vad = LocalVadMonitor()
        assert not vad.is_speech(b"\x00" * 10)

    def test_transitions(self) -> None:
        vad = LocalVadMonitor(silence_ms=100, speech_frames=2)  # 100ms = 5 frames of 20ms
        speech = [True]
        vad.is_speech = lambda frame: speech[0]
        frame = b"\x00" * vad.frame_bytes
        assert vad.push(frame) is None
        assert vad.push(frame) == SPEECH
        assert vad.push(frame) is None
        speech[0] = False
        results = [vad.push(frame) for _ in range(5)]
        assert results == [None, None, None, None, SILENCE]
        assert vad.state == SILENCE

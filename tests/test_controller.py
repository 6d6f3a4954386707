"""Tests for TranscriptionController: VAD fallback, timeout, audio gating, teardown, dispatch."""
from __future__ import annotations

import asyncio

from conftest import FakeTransport, FakeTransportFactory, results_message

from scribe.asr.controller import ControllerCallbacks, ControllerState, TranscriptionController


class Events:
    def __init__(self) -> None:
        self.transcripts = []
        self.utterance_ends = 0
        self.closes = 0
        self.errors: list[str] = []

    async def on_transcript(self, result) -> None:
        self.transcripts.append(result)

    async def on_utterance_end(self) -> None:
        self.utterance_ends += 1

    async def on_close(self) -> None:
        self.closes += 1

    async def on_error(self, reason: str) -> None:
        self.errors.append(reason)

    def callbacks(self) -> ControllerCallbacks:
        return ControllerCallbacks(
            on_transcript=self.on_transcript,
            on_utterance_end=self.on_utterance_end,
            on_close=self.on_close,
            on_error=self.on_error,
        )


def make_controller(factory, events, settings, **kwargs) -> TranscriptionController:
    return TranscriptionController(factory, events.callbacks(), session_id="test", settings=settings, **kwargs)


class TestConnect:
    async def test_first_attempt_with_vad(self, settings) -> None:
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, Events(), settings, prefer_vad=True)
        result = await ctrl.connect()
        assert result.ok and result.vad_events
        assert ctrl.state is ControllerState.LIVE
        assert len(factory.created) == 1
        assert factory.created[0].options.vad_events is True
        assert factory.created[0].options.diarize and factory.created[0].options.interim_results

    async def test_falls_back_without_vad(self, settings) -> None:
        factory = FakeTransportFactory(FakeTransport(fail_open=True))
        ctrl = make_controller(factory, Events(), settings, prefer_vad=True)
        result = await ctrl.connect()
        assert result.ok and not result.vad_events
        assert [t.options.vad_events for t in factory.created] == [True, False]
        assert factory.created[0].finish_calls == 1
        assert ctrl.state is ControllerState.LIVE

    async def test_timeout_triggers_fallback(self, settings) -> None:
        factory = FakeTransportFactory(FakeTransport(hang=True))
        ctrl = make_controller(factory, Events(), settings, prefer_vad=True, connect_timeout=0.05)
        result = await ctrl.connect()
        assert result.ok and not result.vad_events

    async def test_both_attempts_fail(self, settings) -> None:
        factory = FakeTransportFactory(FakeTransport(fail_open=True), FakeTransport(hang=True))
        ctrl = make_controller(factory, Events(), settings, prefer_vad=True, connect_timeout=0.05)
        result = await ctrl.connect()
        assert not result.ok
        assert "timeout" in result.reason
        assert ctrl.state is ControllerState.FAILED
        # terminal: no reconnect on the same instance
        again = await ctrl.connect()
        assert not again.ok
        assert len(factory.created) == 2

    async def test_vad_disabled_single_attempt(self, settings) -> None:
        factory = FakeTransportFactory(FakeTransport(fail_open=True))
        ctrl = make_controller(factory, Events(), settings, prefer_vad=False)
        result = await ctrl.connect()
        assert not result.ok
        assert len(factory.created) == 1
        assert factory.created[0].options.vad_events is False


class TestAudio:
    async def test_audio_dropped_before_connect(self, settings) -> None:
        ctrl = make_controller(FakeTransportFactory(), Events(), settings)
        assert not ctrl.send_audio(b"\x00" * 640)
        assert ctrl.dropped_frames == 1

    async def test_audio_forwarded_in_order(self, settings) -> None:
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, Events(), settings)
        await ctrl.connect()
        frames = [bytes([i]) * 10 for i in range(5)]
        for f in frames:
            assert ctrl.send_audio(f)
        await ctrl.disconnect()
        assert factory.created[0].sent == frames

    async def test_audio_dropped_after_disconnect(self, settings) -> None:
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, Events(), settings)
        await ctrl.connect()
        await ctrl.disconnect()
        assert not ctrl.send_audio(b"\x01" * 10)
        assert factory.created[0].sent == []

    async def test_full_queue_drops(self, settings) -> None:
        ctrl = make_controller(FakeTransportFactory(), Events(), settings, queue_frames=2)
        await ctrl.connect()
        results = [ctrl.send_audio(b"x") for _ in range(3)]
        assert results == [True, True, False]
        await ctrl.disconnect()


class TestDisconnect:
    async def test_flushes_then_closes_once(self, settings) -> None:
        events = Events()
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, events, settings)
        await ctrl.connect()
        await ctrl.disconnect()
        await ctrl.disconnect()
        assert events.utterance_ends == 1
        assert factory.created[0].finish_calls == 1
        assert ctrl.state is ControllerState.CLOSED

    async def test_disconnect_without_connect(self, settings) -> None:
        events = Events()
        ctrl = make_controller(FakeTransportFactory(), events, settings)
        await ctrl.disconnect()
        assert ctrl.state is ControllerState.CLOSED
        assert events.utterance_ends == 1


class TestDispatch:
    async def test_results_and_utterance_end(self, settings) -> None:
        events = Events()
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, events, settings)
        await ctrl.connect()
        transport = factory.created[0]
        await transport.emit(results_message([("hi", 0.0, 0.3, 0)], is_final=False))
        await transport.emit(results_message([("hi", 0.0, 0.3, 0)], is_final=True, speech_final=True))
        empty = results_message([("x", 0, 0.1, 0)])
        empty["channel"]["alternatives"][0]["transcript"] = ""
        await transport.emit(empty)
        await transport.emit({"type": "UtteranceEnd", "last_word_end": 0.3})
        await transport.emit({"type": "SpeechStarted", "timestamp": 0.0})
        assert [r.is_final for r in events.transcripts] == [False, True]
        assert events.utterance_ends == 1

    async def test_upstream_error_is_advisory(self, settings) -> None:
        events = Events()
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, events, settings)
        await ctrl.connect()
        await factory.created[0].emit({"type": "Error", "description": "rate limited"})
        await factory.created[0].emit_error("socket hiccup")
        assert events.errors == ["rate limited", "socket hiccup"]
        assert ctrl.state is ControllerState.LIVE

    async def test_upstream_close_reported_once(self, settings) -> None:
        events = Events()
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, events, settings)
        await ctrl.connect()
        await factory.created[0].emit_close()
        await factory.created[0].emit_close()
        assert events.closes == 1
        assert ctrl.state is ControllerState.CLOSED
        assert not ctrl.send_audio(b"x")

    async def test_close_during_disconnect_not_reported(self, settings) -> None:
        events = Events()
        factory = FakeTransportFactory()
        ctrl = make_controller(factory, events, settings)
        await ctrl.connect()
        task = asyncio.create_task(ctrl.disconnect())
        await asyncio.sleep(0)
        await factory.created[0].emit_close()
        await task
        assert events.closes == 0


class TestConnectInterrupted:
    async def test_cancelled_connect_discards_transport(self, settings) -> None:
        transport = FakeTransport(hang=True)
        ctrl = make_controller(FakeTransportFactory(transport), Events(), settings, connect_timeout=5.0)
        task = asyncio.create_task(ctrl.connect())
        await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.wait({task})
        assert task.cancelled()
        assert transport.finish_calls == 1
        assert ctrl.state is ControllerState.IDLE
        await ctrl.disconnect()
        assert ctrl.state is ControllerState.CLOSED

    async def test_disconnect_during_connect_never_goes_live(self, settings) -> None:
        transport = FakeTransport(open_delay=0.05)
        ctrl = make_controller(FakeTransportFactory(transport), Events(), settings)
        task = asyncio.create_task(ctrl.connect())
        await asyncio.sleep(0.01)
        await ctrl.disconnect()
        result = await task
        assert not result.ok
        assert ctrl.state is ControllerState.CLOSED
        assert transport.finish_calls == 1
        assert not ctrl.send_audio(b"x")

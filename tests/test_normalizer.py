"""Tests for provider payload normalization (pure functions)."""
from __future__ import annotations

from conftest import results_message

from scribe.transcript.models import UNKNOWN_SPEAKER
from scribe.transcript.normalizer import coerce_speaker, normalize_result, normalize_word


class TestNormalizeWord:
    def test_basic_word(self) -> None:
        w = normalize_word({"word": "hello", "punctuated_word": "Hello,", "start": 0.1, "end": 0.4, "confidence": 0.8, "speaker": 1})
        assert w is not None
        assert (w.text, w.punctuated, w.start, w.end, w.speaker, w.confidence) == ("hello", "Hello,", 0.1, 0.4, 1, 0.8)
        assert w.display == "Hello,"

    def test_empty_token_dropped(self) -> None:
        assert normalize_word({"word": "   ", "start": 0.0, "end": 0.1}) is None
        assert normalize_word({"start": 0.0, "end": 0.1}) is None

    def test_end_never_before_start(self) -> None:
        w = normalize_word({"word": "x", "start": 2.0, "end": 1.5})
        assert w is not None and w.end == 2.0

    def test_confidence_clamped(self) -> None:
        assert normalize_word({"word": "x", "start": 0, "end": 0, "confidence": 1.7}).confidence == 1.0
        assert normalize_word({"word": "x", "start": 0, "end": 0, "confidence": "bad"}).confidence == 0.0

    def test_missing_speaker_is_unknown(self) -> None:
        assert normalize_word({"word": "x", "start": 0, "end": 0}).speaker == UNKNOWN_SPEAKER


class TestCoerceSpeaker:
    def test_values(self) -> None:
        assert coerce_speaker(2) == 2
        assert coerce_speaker(3.0) == 3
        assert coerce_speaker("4") == 4
        assert coerce_speaker(None) == UNKNOWN_SPEAKER
        assert coerce_speaker("unknown") == UNKNOWN_SPEAKER
        assert coerce_speaker(True) == UNKNOWN_SPEAKER
        assert coerce_speaker(1.5) == UNKNOWN_SPEAKER


class TestNormalizeResult:
    def test_words_and_flags(self) -> None:
        payload = results_message([("hi", 0.0, 0.3, 0), ("there", 0.3, 0.6, 0)], is_final=True, speech_final=True)
        result = normalize_result(payload)
        assert result is not None
        assert [w.text for w in result.words] == ["hi", "there"]
        assert result.is_final and result.speech_final
        assert result.transcript == "hi there"
        assert (result.start, result.end, result.speaker) == (0.0, 0.6, 0)

    def test_interim_result(self) -> None:
        result = normalize_result(results_message([("hi", 0.0, 0.3, 0)], is_final=False))
        assert result is not None
        assert not result.is_final

    def test_empty_transcript_dropped(self) -> None:
        payload = results_message([("hi", 0.0, 0.3, 0)])
        payload["channel"]["alternatives"][0]["transcript"] = "   "
        assert normalize_result(payload) is None

    def test_no_alternatives_dropped(self) -> None:
        assert normalize_result({"type": "Results", "channel": {"alternatives": []}}) is None
        assert normalize_result({"type": "Results"}) is None

    def test_malformed_alternatives_dropped(self) -> None:
        assert normalize_result({"type": "Results", "channel": {"alternatives": ["oops"]}}) is None
        assert normalize_result({"type": "Results", "channel": {"alternatives": [None]}}) is None
        assert normalize_result({"type": "Results", "channel": {"alternatives": "oops"}}) is None
        assert normalize_result({"type": "Results", "channel": "oops"}) is None

    def test_dominant_speaker_reported(self) -> None:
        payload = results_message([("a", 0, 0.1, 1), ("b", 0.1, 0.2, 2), ("c", 0.2, 0.3, 2)])
        assert normalize_result(payload).speaker == 2

    def test_utterance_only_payload_synthesizes_one_word(self) -> None:
        payload = {
            "type": "Results",
            "is_final": True,
            "start": 4.0,
            "duration": 1.5,
            "channel": {"alternatives": [{"transcript": "good morning", "confidence": 0.7, "words": []}]},
        }
        result = normalize_result(payload)
        assert result is not None
        assert len(result.words) == 1
        only = result.words[0]
        assert (only.text, only.start, only.end, only.speaker) == ("good morning", 4.0, 5.5, 0)

    def test_utterance_only_uses_speaker_hints(self) -> None:
        payload = {
            "type": "Results",
            "is_final": True,
            "start": 0.0,
            "duration": 1.0,
            "channel": {
                "alternatives": [
                    {
                        "transcript": "ok",
                        "words": [{"word": "", "speaker": 3}, {"word": " ", "speaker": 3}, {"word": "", "speaker": 1}],
                    }
                ]
            },
        }
        assert normalize_result(payload).words[0].speaker == 3

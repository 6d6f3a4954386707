"""
Normalize upstream STT result payloads into WordEvents.

Input is one decoded "Results" message from the streaming provider:

    {"is_final": bool, "speech_final": bool, "start": float, "duration": float,
     "channel": {"alternatives": [{"transcript": str, "confidence": float,
                                   "words": [{"word", "punctuated_word", "start",
                                              "end", "confidence", "speaker"}]}]}}

Pure functions, no I/O. Empty or whitespace-only transcripts yield None (dropped,
not an error). Missing or non-numeric per-word speaker becomes UNKNOWN_SPEAKER.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from scribe.transcript.aggregator import dominant_speaker
from scribe.transcript.models import UNKNOWN_SPEAKER, WordEvent


@dataclass
class NormalizedResult:
    """Words of one upstream result plus its finality flags."""

    words: list[WordEvent] = field(default_factory=list)
    is_final: bool = False  # provider will not revise these words
    speech_final: bool = False  # provider detected end of utterance
    transcript: str = ""
    confidence: float = 0.0
    speaker: int = 0  # dominant speaker across words
    start: float = 0.0
    end: float = 0.0


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _clamp_confidence(value: Any) -> float:
    return min(1.0, max(0.0, _as_float(value)))


def coerce_speaker(value: Any) -> int:
    """Provider speaker index as int; anything unusable maps to UNKNOWN_SPEAKER."""
    if isinstance(value, bool):
        return UNKNOWN_SPEAKER
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        if s.lstrip("-").isdigit():
            return int(s)
    return UNKNOWN_SPEAKER


def normalize_word(raw: Mapping[str, Any]) -> WordEvent | None:
    """One provider word -> WordEvent, or None when the token is empty."""
    text = str(raw.get("word") or "").strip()
    if not text:
        return None
    start = _as_float(raw.get("start"))
    end = max(start, _as_float(raw.get("end"), start))
    punctuated = raw.get("punctuated_word")
    punctuated = str(punctuated).strip() if punctuated else None
    return WordEvent(
        text=text,
        start=start,
        end=end,
        speaker=coerce_speaker(raw.get("speaker")),
        confidence=_clamp_confidence(raw.get("confidence")),
        punctuated=punctuated or None,
    )


def normalize_result(payload: Mapping[str, Any]) -> NormalizedResult | None:
    """
    Convert one result payload. Returns None when there is nothing to transcribe.

    Without a word-level breakdown the whole utterance becomes one synthesized
    word spanning [start, start + duration], attributed by the dominant-speaker rule.
    """
    channel = payload.get("channel") or {}
    alternatives = channel.get("alternatives") if isinstance(channel, Mapping) else None
    if not isinstance(alternatives, list) or not alternatives:
        return None
    alt = alternatives[0]
    if not isinstance(alt, Mapping):
        return None
    transcript = str(alt.get("transcript") or "").strip()
    if not transcript:
        return None

    raw_words = [w for w in (alt.get("words") or []) if isinstance(w, Mapping)]
    words = [w for w in (normalize_word(r) for r in raw_words) if w is not None]

    confidence = _clamp_confidence(alt.get("confidence"))
    if words:
        speaker = dominant_speaker(words)
        start, end = words[0].start, words[-1].end
    else:
        # Utterance-level only: tally whatever speaker hints the raw list carried
        hinted = [
            WordEvent(text="", start=0.0, end=0.0, speaker=coerce_speaker(r.get("speaker")))
            for r in raw_words
            if r.get("speaker") is not None
        ]
        speaker = dominant_speaker(hinted)
        start = _as_float(payload.get("start"))
        end = start + max(0.0, _as_float(payload.get("duration")))
        words = [
            WordEvent(
                text=transcript,
                start=start,
                end=end,
                speaker=speaker,
                confidence=confidence,
            )
        ]

    return NormalizedResult(
        words=words,
        is_final=bool(payload.get("is_final")),
        speech_final=bool(payload.get("speech_final")),
        transcript=transcript,
        confidence=confidence,
        speaker=speaker,
        start=start,
        end=end,
    )

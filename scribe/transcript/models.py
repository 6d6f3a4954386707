"""
Word and chunk structures for the transcript pipeline.

- WordEvent: one recognized token (text, start/end seconds, speaker index, confidence).
- Chunk: a contiguous run of words from one speaker, bounded by a duration cap.
- flatten_chunks: the "[Speaker n]: text" flattened transcript stored beside the chunks.

Speaker indices come straight from the upstream diarization; they are session-local
labels, not identities. UNKNOWN_SPEAKER marks words that arrived without one.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

UNKNOWN_SPEAKER = -1

# Tokens like "," or "?!" attach to the previous word without a space
_LEADING_PUNCT = re.compile(r"^[.,!?;:]")


@dataclass(frozen=True)
class WordEvent:
    """Single recognized word. Times are seconds from stream start."""

    text: str
    start: float
    end: float
    speaker: int = UNKNOWN_SPEAKER
    confidence: float = 0.0
    punctuated: str | None = None  # provider's punctuated/cased form, if any

    @property
    def display(self) -> str:
        return self.punctuated or self.text

    def to_record(self) -> dict[str, Any]:
        return {
            "word": self.text,
            "punctuated_word": self.punctuated,
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
            "speaker": self.speaker,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "WordEvent":
        speaker = data.get("speaker")
        return cls(
            text=str(data.get("word") or ""),
            start=float(data.get("start") or 0.0),
            end=float(data.get("end") or 0.0),
            speaker=speaker if isinstance(speaker, int) else UNKNOWN_SPEAKER,
            confidence=float(data.get("confidence") or 0.0),
            punctuated=data.get("punctuated_word"),
        )


def join_word(text: str, word: WordEvent) -> str:
    """Append one word to chunk text; leading punctuation is glued to the previous token."""
    token = word.display
    if not text:
        return token
    if _LEADING_PUNCT.match(token):
        return f"{text}{token}"
    return f"{text} {token}"


@dataclass
class Chunk:
    """
    Speaker-homogeneous run of words.

    Only the aggregator's open chunk has finalized=False; once finalized the chunk
    is handed to persistence and must not be modified.
    """

    speaker: int
    start: float
    end: float
    text: str = ""
    raw_words: list[WordEvent] = field(default_factory=list)
    finalized: bool = False

    @classmethod
    def open_with(cls, word: WordEvent) -> "Chunk":
        return cls(
            speaker=word.speaker,
            start=word.start,
            end=word.end,
            text=word.display,
            raw_words=[word],
        )

    @property
    def word_count(self) -> int:
        return len(self.raw_words)

    @property
    def duration(self) -> float:
        return self.end - self.start

    def append(self, word: WordEvent) -> None:
        self.raw_words.append(word)
        self.end = word.end
        self.text = join_word(self.text, word)

    def to_record(self) -> dict[str, Any]:
        """Shape stored in the transcript record's chunk array."""
        return {
            "speaker": self.speaker,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "word_count": self.word_count,
            "raw": [w.to_record() for w in self.raw_words],
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Chunk":
        raw = [WordEvent.from_record(w) for w in data.get("raw") or []]
        speaker = data.get("speaker")
        return cls(
            speaker=speaker if isinstance(speaker, int) else UNKNOWN_SPEAKER,
            start=float(data.get("start") or 0.0),
            end=float(data.get("end") or 0.0),
            text=str(data.get("text") or ""),
            raw_words=raw,
            finalized=True,
        )


def format_chunk_line(speaker: int, text: str) -> str:
    return f"[Speaker {speaker}]: {text}"


def flatten_chunks(chunks: Iterable[Chunk | Mapping[str, Any]]) -> str:
    """Flattened transcript: one "[Speaker n]: text" line per chunk, in order. Pure."""
    lines: list[str] = []
    for c in chunks:
        if isinstance(c, Chunk):
            lines.append(format_chunk_line(c.speaker, c.text))
        else:
            lines.append(format_chunk_line(c.get("speaker", UNKNOWN_SPEAKER), c.get("text", "")))
    return "\n".join(lines)

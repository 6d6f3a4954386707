"""
ChunkAggregator: folds finalized words into speaker turns ("chunks").

A chunk is closed when the next word
- comes from a different speaker, or
- would stretch the chunk past max_duration (word.end - chunk.start > max_duration),
and the word then opens the next chunk. Both are independent OR-ed triggers.
Words are taken strictly in delivery order; no look-ahead, no reordering.

A single word longer than max_duration still forms one chunk: the cap bounds
accumulation, never a word. The comparison is strict, so a chunk spanning exactly
max_duration is kept whole.

One aggregator per session; not thread-safe and never awaits.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Sequence

from scribe.transcript.models import Chunk, WordEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_DURATION = 30.0


def dominant_speaker(words: Iterable[WordEvent]) -> int:
    """Speaker with the most words; ties go to the lowest id; 0 for no words."""
    counts = Counter(w.speaker for w in words)
    if not counts:
        return 0
    return min(counts, key=lambda speaker: (-counts[speaker], speaker))


class ChunkAggregator:
    """Holds at most one open chunk; returns chunks as they are finalized."""

    def __init__(self, max_duration: float = DEFAULT_MAX_CHUNK_DURATION) -> None:
        self._max_duration = max_duration
        self._open: Chunk | None = None

    @property
    def open_chunk(self) -> Chunk | None:
        return self._open

    @property
    def max_duration(self) -> float:
        return self._max_duration

    def ingest(self, words: Sequence[WordEvent], is_final: bool = False) -> list[Chunk]:
        """
        Consume words in order. is_final marks an utterance end: the open chunk
        is finalized after the words are consumed. Returns newly finalized chunks.
        """
        finalized: list[Chunk] = []
        for word in words:
            if self._open is None:
                self._open = Chunk.open_with(word)
                continue
            speaker_changed = word.speaker != self._open.speaker
            duration_exceeded = (word.end - self._open.start) > self._max_duration
            if speaker_changed or duration_exceeded:
                finalized.append(self._finalize())
                self._open = Chunk.open_with(word)
            else:
                self._open.append(word)
        if is_final and self._open is not None:
            finalized.append(self._finalize())
        return finalized

    def flush(self) -> list[Chunk]:
        """Force-finalize the open chunk (utterance end, disconnect, session end)."""
        if self._open is None:
            return []
        return [self._finalize()]

    def _finalize(self) -> Chunk:
        chunk = self._open
        assert chunk is not None
        chunk.finalized = True
        self._open = None
        logger.debug(
            "Chunk finalized: speaker=%s words=%d span=%.2fs",
            chunk.speaker,
            chunk.word_count,
            chunk.duration,
        )
        return chunk

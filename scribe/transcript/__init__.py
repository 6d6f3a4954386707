"""Transcript handling: word normalization, speaker-turn chunking, flattened text."""
from .models import UNKNOWN_SPEAKER, Chunk, WordEvent, flatten_chunks
from .aggregator import ChunkAggregator, dominant_speaker
from .normalizer import NormalizedResult, normalize_result

__all__ = [
    "UNKNOWN_SPEAKER",
    "Chunk",
    "WordEvent",
    "flatten_chunks",
    "ChunkAggregator",
    "dominant_speaker",
    "NormalizedResult",
    "normalize_result",
]

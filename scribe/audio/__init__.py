"""Audio input: PCM re-framing and local voice-activity status."""
from .receiver import AudioReceiver
from .vad import SILENCE, SPEECH, LocalVadMonitor

__all__ = [
    "AudioReceiver",
    "LocalVadMonitor",
    "SILENCE",
    "SPEECH",
]

"""Upstream streaming STT: transport abstraction, Deepgram transport, session controller."""
from .base import StreamOptions, TranscriptionTransport, TransportFactory
from .controller import (
    ConnectResult,
    ControllerCallbacks,
    ControllerState,
    TranscriptionController,
    default_stream_options,
)
from .deepgram import DeepgramTransport

__all__ = [
    "StreamOptions",
    "TranscriptionTransport",
    "TransportFactory",
    "ConnectResult",
    "ControllerCallbacks",
    "ControllerState",
    "TranscriptionController",
    "default_stream_options",
    "DeepgramTransport",
]

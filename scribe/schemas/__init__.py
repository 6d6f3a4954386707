"""Schemas for the WebSocket protocol and HTTP responses."""
from .http import CurrentPatientResponse, HealthResponse, TranscriptRecord
from .messages import (
    ChunkMessage,
    ClientMessage,
    Connected,
    ErrorMessage,
    Ping,
    Pong,
    RecordingStarted,
    RecordingStopped,
    ServerMessage,
    SetPatientMetadata,
    StartRecording,
    Status,
    StopRecording,
    TranscriptUpdate,
    parse_client_message,
)

__all__ = [
    "CurrentPatientResponse",
    "HealthResponse",
    "TranscriptRecord",
    "ChunkMessage",
    "ClientMessage",
    "Connected",
    "ErrorMessage",
    "Ping",
    "Pong",
    "RecordingStarted",
    "RecordingStopped",
    "ServerMessage",
    "SetPatientMetadata",
    "StartRecording",
    "Status",
    "StopRecording",
    "TranscriptUpdate",
    "parse_client_message",
]

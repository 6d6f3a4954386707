"""
WebSocket message schemas.

Inbound control messages are a closed set discriminated by `type`; anything else
is rejected with ProtocolError. Binary frames (audio) never reach this module.
Field names are snake_case; the camelCase names older clients send
(patientCode, patientUuid) are accepted as aliases.

Outbound events are serialized with model_dump_json().
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from scribe.errors import ProtocolError


class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StartRecording(_Inbound):
    type: Literal["start_recording"]
    patient_code: Optional[str] = Field(None, alias="patientCode", description="Session code hint; generated if absent")
    patient_uuid: Optional[str] = Field(None, alias="patientUuid")


class StopRecording(_Inbound):
    type: Literal["stop_recording"]


class SetPatientMetadata(_Inbound):
    type: Literal["set_patient_metadata"]
    patient_code: Optional[str] = Field(None, alias="patientCode")
    patient_uuid: Optional[str] = Field(None, alias="patientUuid")
    metadata: Optional[dict[str, Any]] = None


class Ping(_Inbound):
    type: Literal["ping"]


ClientMessage = Annotated[
    Union[StartRecording, StopRecording, SetPatientMetadata, Ping],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def _describe(err: ValidationError) -> str:
    first = err.errors()[0]
    kind = first.get("type")
    ctx = first.get("ctx") or {}
    if kind == "json_invalid":
        return "Invalid JSON"
    if kind == "union_tag_invalid":
        return f"Unknown message type: {ctx.get('tag')}"
    if kind == "union_tag_not_found":
        return "Missing message type"
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"Invalid message ({loc}): {first.get('msg')}" if loc else f"Invalid message: {first.get('msg')}"


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Validate one JSON control message. Raises ProtocolError."""
    try:
        return _client_message_adapter.validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(_describe(e)) from e


# --- Outbound ---


class Connected(BaseModel):
    type: Literal["connected"] = "connected"
    session_id: str
    user_id: str


class Status(BaseModel):
    type: Literal["status"] = "status"
    source: Literal["backend", "deepgram", "store", "vad"]
    state: str
    message: Optional[str] = None


class RecordingStarted(BaseModel):
    type: Literal["recording_started"] = "recording_started"
    transcript_id: Optional[int] = Field(None, description="None while the store record is not created yet")
    patient_code: str
    vad_events: bool = False


class RecordingStopped(BaseModel):
    type: Literal["recording_stopped"] = "recording_stopped"
    transcript_id: Optional[int] = None
    persisted: bool = Field(..., description="All chunks stored and record marked complete")


class TranscriptUpdate(BaseModel):
    type: Literal["transcript"] = "transcript"
    is_final: bool
    speech_final: bool = False
    speaker: int
    text: str
    start: float
    end: float
    confidence: float = 0.0


class ChunkMessage(BaseModel):
    type: Literal["chunk"] = "chunk"
    speaker: int
    text: str
    start: float
    end: float
    word_count: int


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    error: str


class Pong(BaseModel):
    type: Literal["pong"] = "pong"
    timestamp: int = Field(..., description="Server time, unix ms")


ServerMessage = Union[
    Connected,
    Status,
    RecordingStarted,
    RecordingStopped,
    TranscriptUpdate,
    ChunkMessage,
    ErrorMessage,
    Pong,
]

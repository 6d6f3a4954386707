"""Response bodies for the HTTP routes."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = Field(0, description="Open WebSocket sessions")
    store: str = Field("memory", description="Transcript store backend in use")


class TranscriptRecord(BaseModel):
    """One stored transcript record. Unknown columns are passed through."""

    model_config = ConfigDict(extra="allow")

    id: int
    user_id: Optional[str] = None
    patient_code: Optional[str] = None
    patient_uuid: Optional[str] = None
    transcript: str = ""
    transcript_chunk: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class CurrentPatientResponse(BaseModel):
    """Patient of the user's most recent transcript."""

    transcript_id: int
    patient_code: Optional[str] = None
    patient_uuid: Optional[str] = None
    created_at: Optional[str] = None
    completed: bool = False

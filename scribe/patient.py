"""
Patient context attached to a recording session.

patient_code is the human-meaningful session code stored on the transcript
record. When the client does not send one, an ephemeral code is generated.
"""
from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Optional

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _code_part(length: int = 4) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def generate_patient_code() -> str:
    """Ephemeral code of the form PT-XXXX-XXXX ([A-Z0-9])."""
    return f"PT-{_code_part()}-{_code_part()}"


@dataclass
class PatientContext:
    patient_code: str = ""
    patient_uuid: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def update(
        self,
        patient_code: Optional[str] = None,
        patient_uuid: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Merge non-empty fields; metadata keys are merged, not replaced."""
        if patient_code:
            self.patient_code = patient_code
        if patient_uuid:
            self.patient_uuid = patient_uuid
        if metadata:
            self.metadata.update(metadata)

    def ensure_code(self) -> str:
        if not self.patient_code:
            self.patient_code = generate_patient_code()
        return self.patient_code

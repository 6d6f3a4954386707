"""Exception types shared across the pipeline."""
from __future__ import annotations


class ScribeError(Exception):
    """Base for all service errors."""


class TranscriptionError(ScribeError):
    """Upstream streaming STT failed (mid-stream or during setup)."""


class TranscriptionConnectError(TranscriptionError):
    """Upstream connection could not be established."""


class StoreError(ScribeError):
    """Remote transcript store rejected or failed an operation."""


class ProtocolError(ScribeError):
    """Client sent an unparseable or unknown control message."""

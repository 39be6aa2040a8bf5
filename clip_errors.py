"""Error types raised by the clip pipeline."""
from __future__ import annotations

from typing import Optional


class ContinuatorError(RuntimeError):
    """Base class for every failure surfaced to the caller."""


class MissingCredentialError(ContinuatorError):
    """Raised when no API key or access token is available."""


class CredentialHelperError(ContinuatorError):
    """Raised when the external credential helper runs but fails."""


class InvalidConfigError(ContinuatorError):
    """Raised for unusable configuration or request values."""


class TransportError(ContinuatorError):
    """Raised when an HTTP request could not be completed."""


class LocalIOError(ContinuatorError):
    """Raised when local metadata or media files cannot be read or written."""


class ToolMissingError(ContinuatorError):
    """Raised when the external media tool is not installed or cannot be executed."""

    def __init__(self, tool: str, reason: Optional[str] = None) -> None:
        if reason:
            message = f"{tool} could not be executed: {reason}"
        else:
            message = f"{tool} not found on PATH"
        super().__init__(message)
        self.tool = tool
        self.reason = reason


class MediaToolFailedError(ContinuatorError):
    """Raised when the external media tool exits with a non-zero status."""

    action = "media tool command"

    def __init__(self, exit_status: int, detail: Optional[str] = None) -> None:
        message = f"{self.action} failed: ffmpeg exited with status {exit_status}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.exit_status = exit_status


class ExtractionFailedError(MediaToolFailedError):
    action = "frame extraction"


class ConcatenationFailedError(MediaToolFailedError):
    action = "video concatenation"


class JobFailedError(ContinuatorError):
    """Raised when the remote service reports a failed or rejected render."""


class ClipNotFoundError(ContinuatorError):
    """Raised when a clip's media file is missing from disk."""

    def __init__(self, local_id: str) -> None:
        super().__init__(f"video not found locally: {local_id}")
        self.local_id = local_id


class MetadataNotFoundError(ContinuatorError):
    """Raised when no metadata record exists for a local id."""

    def __init__(self, local_id: str) -> None:
        super().__init__(f"metadata missing for video: {local_id}")
        self.local_id = local_id


class InvalidResponseError(ContinuatorError):
    """Raised when a remote response does not have the expected shape."""


class UnsupportedOperationError(ContinuatorError):
    """Raised when a backend cannot perform the requested operation."""


__all__ = [
    "ContinuatorError",
    "MissingCredentialError",
    "CredentialHelperError",
    "InvalidConfigError",
    "TransportError",
    "LocalIOError",
    "ToolMissingError",
    "MediaToolFailedError",
    "ExtractionFailedError",
    "ConcatenationFailedError",
    "JobFailedError",
    "ClipNotFoundError",
    "MetadataNotFoundError",
    "InvalidResponseError",
    "UnsupportedOperationError",
]

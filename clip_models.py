"""Data types shared by the clip manager, render backends and remote clients."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from clip_errors import InvalidResponseError


class ProviderKind(str, Enum):
    SORA = "sora"
    VEO = "veo"


class VideoVariant(str, Enum):
    VIDEO = "video"
    THUMBNAIL = "thumbnail"
    SPRITESHEET = "spritesheet"

    @property
    def query_value(self) -> Optional[str]:
        """Value of the ``variant`` query parameter; the primary video sends none."""

        if self is VideoVariant.VIDEO:
            return None
        return self.value


class JobState(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
    UNKNOWN = "unknown"


_TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELED})


@dataclass(frozen=True)
class JobStatus:
    """Status of a remote job.

    ``raw`` always holds the string the service sent, so statuses introduced
    by the service after this client was written survive a round trip as
    ``JobState.UNKNOWN``.
    """

    state: JobState
    raw: str

    @classmethod
    def parse(cls, value: str) -> "JobStatus":
        text = str(value)
        try:
            state = JobState(text)
        except ValueError:
            state = JobState.UNKNOWN
        return cls(state=state, raw=text)

    def to_wire(self) -> str:
        return self.raw

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATES

    @property
    def is_unknown(self) -> bool:
        return self.state is JobState.UNKNOWN

    def __str__(self) -> str:
        return self.raw


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidResponseError(f"unexpected type for {field_name} field: bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise InvalidResponseError(f"{field_name} field string is not an integer: {value!r}") from exc
    raise InvalidResponseError(f"unexpected type for {field_name} field: {type(value).__name__}")


@dataclass
class RemoteJob:
    """A job object returned by the job-style video API."""

    id: str
    status: JobStatus
    model: Optional[str] = None
    size: Optional[str] = None
    seconds: Optional[int] = None
    created_at: Optional[int] = None
    progress: Optional[float] = None
    error_message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteJob":
        if not isinstance(payload, Mapping):
            raise InvalidResponseError(f"expected a job object, got {type(payload).__name__}")
        job_id = payload.get("id")
        status = payload.get("status")
        if not job_id or status is None:
            raise InvalidResponseError(f"job object missing id or status: {dict(payload)}")

        error = payload.get("error")
        error_message = None
        if isinstance(error, Mapping):
            message = error.get("message")
            error_message = str(message) if message else None

        progress = payload.get("progress")
        return cls(
            id=str(job_id),
            status=JobStatus.parse(status),
            model=str(payload["model"]) if payload.get("model") else None,
            size=str(payload["size"]) if payload.get("size") else None,
            seconds=_optional_int(payload.get("seconds"), "seconds"),
            created_at=_optional_int(payload.get("created_at"), "created_at"),
            progress=float(progress) if isinstance(progress, (int, float)) else None,
            error_message=error_message,
        )


@dataclass
class RenderRequest:
    prompt: str
    model: str
    size: str
    seconds: int
    output_path: Path
    seed_image_path: Optional[Path] = None
    poll_interval: float = 5.0


@dataclass
class RenderOutcome:
    remote_id: str
    model: str
    size: str
    seconds: int
    created_at: Optional[int] = None


@dataclass
class CreateClipRequest:
    prompt: str
    local_id: str
    model: Optional[str] = None
    size: Optional[str] = None
    seconds: Optional[int] = None


@dataclass
class ContinueClipRequest:
    parent_local_id: str
    local_id: str
    prompt: str
    model: Optional[str] = None
    size: Optional[str] = None
    seconds: Optional[int] = None


@dataclass
class ClipMetadata:
    """Durable record stored as ``<local_id>.json`` in the data directory."""

    local_id: str
    remote_id: str
    prompt: str
    model: str
    seconds: int
    size: str
    created_at: Optional[int]
    file_path: Path
    parent: Optional[str] = None
    backend_kind: ProviderKind = ProviderKind.SORA

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local_id": self.local_id,
            "remote_id": self.remote_id,
            "prompt": self.prompt,
            "model": self.model,
            "seconds": self.seconds,
            "size": self.size,
            "created_at": self.created_at,
            "file_path": str(self.file_path),
            "parent": self.parent,
            "backend_kind": self.backend_kind.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClipMetadata":
        """Build a record from parsed JSON; raises KeyError/ValueError/TypeError on bad data."""

        if not isinstance(data, Mapping):
            raise TypeError(f"metadata must be a JSON object, got {type(data).__name__}")
        created_at = data.get("created_at")
        parent = data.get("parent")
        return cls(
            local_id=str(data["local_id"]),
            remote_id=str(data["remote_id"]),
            prompt=str(data["prompt"]),
            model=str(data["model"]),
            seconds=int(data["seconds"]),
            size=str(data["size"]),
            created_at=int(created_at) if created_at is not None else None,
            file_path=Path(data["file_path"]),
            parent=str(parent) if parent is not None else None,
            backend_kind=ProviderKind(data.get("backend_kind") or ProviderKind.SORA.value),
        )

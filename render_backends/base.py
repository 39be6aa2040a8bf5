"""Base class and shared values for render backends."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from clip_models import ProviderKind, RenderOutcome, RenderRequest, VideoVariant


@dataclass(frozen=True, slots=True)
class BackendDefaults:
    """Model, size and duration used when neither the request nor a parent clip sets them."""

    model: str
    size: str
    seconds: int


class RenderBackend(ABC):
    """Interface every remote video service adapter implements.

    A backend holds no durable state. ``render`` blocks until the remote job
    finishes and the primary video sits at ``request.output_path``.
    """

    kind: ProviderKind

    def __init__(self, defaults: BackendDefaults) -> None:
        self.defaults = defaults

    @abstractmethod
    def render(self, request: RenderRequest) -> RenderOutcome:
        """Render a clip, wait for completion and write it to the output path."""

    @abstractmethod
    def download(self, remote_id: str, variant: VideoVariant, output_path: Path) -> None:
        """Fetch a variant of an already-rendered clip."""


__all__ = ["BackendDefaults", "RenderBackend"]

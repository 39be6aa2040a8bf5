"""Render backends for the remote video services."""

from .base import BackendDefaults, RenderBackend
from .sora import SoraBackend
from .veo import VeoBackend, size_to_aspect_ratio, size_to_resolution, validate_duration

__all__ = [
    "BackendDefaults",
    "RenderBackend",
    "SoraBackend",
    "VeoBackend",
    "size_to_aspect_ratio",
    "size_to_resolution",
    "validate_duration",
]

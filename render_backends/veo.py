"""Operation-style backend for Veo on Vertex AI."""
from __future__ import annotations

import base64
import binascii
import time
from pathlib import Path
from typing import Dict, Optional

from clip_errors import (
    InvalidConfigError,
    InvalidResponseError,
    JobFailedError,
    LocalIOError,
    UnsupportedOperationError,
)
from clip_models import ProviderKind, RenderOutcome, RenderRequest, VideoVariant
from logging_utils import get_logger
from media_tools.frames import image_mime_type
from veo_client import OperationState, VeoClient, build_predict_payload

from .base import BackendDefaults, RenderBackend

logger = get_logger(__name__)

SUPPORTED_DURATIONS = (4, 6, 8)

_RESOLUTIONS: Dict[str, str] = {
    "1280x720": "720p",
    "720x1280": "720p",
    "1920x1080": "1080p",
    "1080x1920": "1080p",
}

_ASPECT_RATIOS: Dict[str, str] = {
    "1280x720": "16:9",
    "1920x1080": "16:9",
    "720x1280": "9:16",
    "1080x1920": "9:16",
}


def size_to_resolution(size: str) -> Optional[str]:
    return _RESOLUTIONS.get(size)


def size_to_aspect_ratio(size: str) -> Optional[str]:
    return _ASPECT_RATIOS.get(size)


def validate_duration(seconds: int) -> None:
    if seconds not in SUPPORTED_DURATIONS:
        raise InvalidConfigError(
            f"Veo 3 Preview requires duration 4, 6, or 8 seconds (got {seconds})"
        )


class VeoBackend(RenderBackend):
    """Start a long-running prediction, poll the operation, then write the inline video bytes."""

    kind = ProviderKind.VEO

    def __init__(
        self,
        client: VeoClient,
        defaults: BackendDefaults,
        *,
        generate_audio: bool = True,
        enhance_prompt: bool = True,
        storage_uri: Optional[str] = None,
        resolution: Optional[str] = None,
    ) -> None:
        super().__init__(defaults)
        self.client = client
        self.generate_audio = generate_audio
        self.enhance_prompt = enhance_prompt
        self.storage_uri = storage_uri
        self.resolution = resolution

    def render(self, request: RenderRequest) -> RenderOutcome:
        validate_duration(request.seconds)

        resolution = self.resolution or size_to_resolution(request.size)
        aspect_ratio = size_to_aspect_ratio(request.size)

        image = None
        if request.seed_image_path is not None:
            image = self._encode_seed_image(request.seed_image_path)

        payload = build_predict_payload(
            request.prompt,
            duration_seconds=request.seconds,
            generate_audio=self.generate_audio,
            enhance_prompt=self.enhance_prompt,
            image=image,
            storage_uri=self.storage_uri,
            resolution=resolution,
            aspect_ratio=aspect_ratio,
        )
        logger.info(
            "Veo submit: model=%s seconds=%s resolution=%s aspect=%s seeded=%s",
            request.model,
            request.seconds,
            resolution,
            aspect_ratio,
            image is not None,
        )

        operation_name = self.client.submit(request.model, payload)
        state = self._wait_for_operation(request.model, operation_name, request.poll_interval)
        self._write_video(state, request.output_path)

        return RenderOutcome(
            remote_id=operation_name,
            model=request.model,
            size=request.size,
            seconds=request.seconds,
            created_at=None,
        )

    def download(self, remote_id: str, variant: VideoVariant, output_path: Path) -> None:
        raise UnsupportedOperationError(
            f"Veo backend does not support downloading {variant.value} directly"
        )

    def _wait_for_operation(self, model: str, operation_name: str, poll_interval: float) -> OperationState:
        while True:
            state = self.client.fetch_operation(model, operation_name)
            if state.error_message is not None:
                raise JobFailedError(state.error_message)
            if state.done:
                if not state.has_response:
                    raise InvalidResponseError("operation completed without response payload")
                logger.info("Veo operation %s completed", operation_name)
                return state
            logger.info("Polling Veo operation %s: not done yet", operation_name)
            time.sleep(poll_interval)

    @staticmethod
    def _encode_seed_image(path: Path) -> Dict[str, str]:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise LocalIOError(f"failed to read seed image {path}: {exc}") from exc
        return {
            "bytesBase64Encoded": base64.b64encode(data).decode("ascii"),
            "mimeType": image_mime_type(path),
        }

    @staticmethod
    def _write_video(state: OperationState, output_path: Path) -> None:
        encoded = next((video.bytes_base64_encoded for video in state.videos if video.bytes_base64_encoded), None)
        if encoded is None:
            if any(video.gcs_uri for video in state.videos):
                raise UnsupportedOperationError(
                    "Veo returned Cloud Storage URIs; provide gcp_storage_uri= or download manually"
                )
            message = "Veo response missing video payload"
            if state.filtered_reasons:
                message = f"{message}; filtered: {'; '.join(state.filtered_reasons)}"
            raise InvalidResponseError(message)

        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, TypeError, ValueError) as exc:
            raise InvalidResponseError(f"invalid base64 video payload: {exc}") from exc

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(data)
        except OSError as exc:
            raise LocalIOError(f"failed to write {output_path}: {exc}") from exc
        logger.info("Wrote Veo video (%d bytes) -> %s", len(data), output_path)

"""Job-style backend for the OpenAI Sora videos API."""
from __future__ import annotations

import time
from pathlib import Path

from clip_errors import JobFailedError
from clip_models import JobState, ProviderKind, RemoteJob, RenderOutcome, RenderRequest, VideoVariant
from logging_utils import get_logger
from media_tools.frames import conform_image
from sora_client import SoraClient

from .base import BackendDefaults, RenderBackend

logger = get_logger(__name__)


class SoraBackend(RenderBackend):
    """Submit a job, poll it by id until terminal, then download the content."""

    kind = ProviderKind.SORA

    def __init__(self, client: SoraClient, defaults: BackendDefaults) -> None:
        super().__init__(defaults)
        self.client = client

    def render(self, request: RenderRequest) -> RenderOutcome:
        input_reference = None
        if request.seed_image_path is not None:
            input_reference = conform_image(request.seed_image_path, request.size)

        job = self.client.create_video(
            prompt=request.prompt,
            model=request.model,
            seconds=request.seconds,
            size=request.size,
            input_reference=input_reference,
        )
        logger.info("Sora job created: id=%s status=%s", job.id, job.status)

        job = self._wait_for_completion(job, request.poll_interval)
        self.client.download_video(job.id, VideoVariant.VIDEO, request.output_path)

        return RenderOutcome(
            remote_id=job.id,
            model=job.model or request.model,
            size=job.size or request.size,
            seconds=job.seconds if job.seconds is not None else request.seconds,
            created_at=job.created_at,
        )

    def download(self, remote_id: str, variant: VideoVariant, output_path: Path) -> None:
        self.client.download_video(remote_id, variant, output_path)

    def _wait_for_completion(self, job: RemoteJob, poll_interval: float) -> RemoteJob:
        # No attempt limit: the job runs until the service reports a terminal state
        while not job.status.is_terminal:
            if job.progress is not None:
                logger.info("Polling Sora job %s: status=%s progress=%.0f%%", job.id, job.status, job.progress)
            elif job.status.is_unknown:
                logger.info("Polling Sora job %s: unrecognised status %s, still waiting", job.id, job.status)
            else:
                logger.info("Polling Sora job %s: status=%s", job.id, job.status)
            time.sleep(poll_interval)
            job = self.client.retrieve_video(job.id)

        if job.status.state is JobState.FAILED:
            raise JobFailedError(job.error_message or "unknown error")
        if job.status.state is JobState.CANCELED:
            raise JobFailedError("job was canceled")
        logger.info("Sora job %s completed", job.id)
        return job

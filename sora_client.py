"""OpenAI Sora video job client."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import requests

from clip_errors import (
    InvalidResponseError,
    JobFailedError,
    LocalIOError,
    MissingCredentialError,
    TransportError,
)
from clip_models import RemoteJob, VideoVariant

logger = logging.getLogger(__name__)

_DOWNLOAD_CHUNK_SIZE = 1 << 20


class SoraClient:
    """Create, poll and download video jobs on the OpenAI videos API."""

    BASE_URL = "https://api.openai.com/v1"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        timeout_connect: float = 10.0,
        timeout_read: float = 120.0,
    ) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            raise MissingCredentialError("missing OPENAI_API_KEY environment variable")
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout_connect = timeout_connect
        self.timeout_read = timeout_read

    @property
    def _timeout(self) -> Tuple[float, float]:
        return (self.timeout_connect, self.timeout_read)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def create_video(
        self,
        *,
        prompt: str,
        model: str,
        seconds: int,
        size: str,
        input_reference: Optional[Tuple[bytes, str]] = None,
    ) -> RemoteJob:
        """Submit a render job. ``input_reference`` is ``(image_bytes, mime_type)``."""
        # (None, value) tuples force a multipart body even without a file part
        files: Dict[str, Any] = {
            "model": (None, model),
            "prompt": (None, prompt),
            "seconds": (None, str(seconds)),
            "size": (None, size),
        }
        if input_reference is not None:
            image_bytes, mime_type = input_reference
            extension = mime_type.split("/")[-1] or "png"
            files["input_reference"] = (f"input.{extension}", image_bytes, mime_type)

        url = f"{self.base_url}/videos"
        logger.info("Sora create request: model=%s size=%s seconds=%s prompt=%s", model, size, seconds, prompt[:80])
        try:
            start = time.monotonic()
            response = requests.post(url, headers=self._headers(), files=files, timeout=self._timeout)
            elapsed = time.monotonic() - start
        except requests.RequestException as exc:
            raise TransportError(f"Sora create request failed: {exc}") from exc
        logger.info("Sora response: status=%s elapsed=%.2fs", response.status_code, elapsed)
        return self._parse_job(response)

    def retrieve_video(self, video_id: str) -> RemoteJob:
        url = f"{self.base_url}/videos/{video_id}"
        try:
            response = requests.get(url, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransportError(f"Sora retrieve request failed: {exc}") from exc
        return self._parse_job(response)

    def download_video(self, video_id: str, variant: VideoVariant, output_path: Path) -> Path:
        """Stream the content of ``variant`` to ``output_path``."""
        url = f"{self.base_url}/videos/{video_id}/content"
        query = variant.query_value
        params = {"variant": query} if query else None

        try:
            response = requests.get(
                url,
                headers=self._headers(),
                params=params,
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Sora content download failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"Sora content download failed ({response.status_code}): {_body_text(response)}"
            )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            with output_path.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=_DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
                        written += len(chunk)
        except requests.RequestException as exc:
            output_path.unlink(missing_ok=True)
            raise TransportError(f"Sora content download interrupted: {exc}") from exc
        except OSError as exc:
            raise LocalIOError(f"failed to write {output_path}: {exc}") from exc

        logger.info("Downloaded %s %s (%d bytes) -> %s", video_id, variant.value, written, output_path)
        return output_path

    @staticmethod
    def _parse_job(response: Any) -> RemoteJob:
        status = response.status_code
        if status == 204:
            raise InvalidResponseError("empty response from server")
        if not 200 <= status < 300:
            raise JobFailedError(f"API error ({status}): {_body_text(response)}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise InvalidResponseError(f"Sora response is not JSON: {exc}") from exc
        return RemoteJob.from_payload(payload)


def _body_text(response: Any) -> str:
    text = getattr(response, "text", "") or ""
    return text.strip() or "<no body>"

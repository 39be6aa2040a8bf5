"""Vertex AI Veo long-running operation client."""
from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from clip_errors import (
    CredentialHelperError,
    InvalidConfigError,
    InvalidResponseError,
    JobFailedError,
    MissingCredentialError,
    TransportError,
)

logger = logging.getLogger(__name__)

GCLOUD_TOKEN_COMMAND = ("gcloud", "auth", "print-access-token")


class StaticTokenSource:
    """Access token supplied up front by the operator."""

    def __init__(self, token: str) -> None:
        token = (token or "").strip()
        if not token:
            raise MissingCredentialError("unable to obtain Google Cloud access token")
        self._token = token

    def access_token(self) -> str:
        return self._token


class GcloudTokenSource:
    """Print a fresh access token with the gcloud CLI before every request."""

    def __init__(self, command: Sequence[str] = GCLOUD_TOKEN_COMMAND) -> None:
        self.command = list(command)

    def access_token(self) -> str:
        try:
            completed = subprocess.run(self.command, capture_output=True)
        except FileNotFoundError as exc:
            raise MissingCredentialError(
                f"unable to obtain Google Cloud access token: {self.command[0]} not found"
            ) from exc
        except OSError as exc:
            raise CredentialHelperError(f"Google Cloud auth failed: {exc}") from exc

        if completed.returncode != 0:
            raise CredentialHelperError(
                f"Google Cloud auth failed: {self.command[0]} exited with status {completed.returncode}"
            )
        try:
            token = completed.stdout.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise CredentialHelperError(f"Google Cloud auth failed: {exc}") from exc
        if not token:
            raise MissingCredentialError("unable to obtain Google Cloud access token")
        return token


@dataclass
class GeneratedVideo:
    gcs_uri: Optional[str] = None
    bytes_base64_encoded: Optional[str] = None
    mime_type: Optional[str] = None


@dataclass
class OperationState:
    """Snapshot of a long-running prediction operation."""

    name: str
    done: bool
    error_message: Optional[str] = None
    has_response: bool = False
    videos: List[GeneratedVideo] = field(default_factory=list)
    filtered_reasons: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], fallback_name: str = "") -> "OperationState":
        if not isinstance(payload, Mapping):
            raise InvalidResponseError(f"expected an operation object, got {type(payload).__name__}")

        error_message = None
        error = payload.get("error")
        if isinstance(error, Mapping):
            error_message = str(error.get("message") or "unknown error")
        elif error:
            error_message = str(error)

        response = payload.get("response")
        videos: List[GeneratedVideo] = []
        reasons: List[str] = []
        if isinstance(response, Mapping):
            for entry in response.get("videos") or []:
                if not isinstance(entry, Mapping):
                    continue
                videos.append(
                    GeneratedVideo(
                        gcs_uri=entry.get("gcsUri"),
                        bytes_base64_encoded=entry.get("bytesBase64Encoded"),
                        mime_type=entry.get("mimeType"),
                    )
                )
            reasons = [str(reason) for reason in response.get("raiMediaFilteredReasons") or []]

        return cls(
            name=str(payload.get("name") or fallback_name),
            done=bool(payload.get("done", False)),
            error_message=error_message,
            has_response=isinstance(response, Mapping),
            videos=videos,
            filtered_reasons=reasons,
        )


def build_predict_payload(
    prompt: str,
    *,
    duration_seconds: int,
    generate_audio: bool,
    enhance_prompt: bool,
    image: Optional[Dict[str, str]] = None,
    storage_uri: Optional[str] = None,
    resolution: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    sample_count: Optional[int] = None,
) -> Dict[str, Any]:
    """Assemble a ``predictLongRunning`` body, omitting unset optional keys."""
    instance: Dict[str, Any] = {"prompt": prompt}
    if image is not None:
        instance["image"] = image

    parameters: Dict[str, Any] = {
        "durationSeconds": duration_seconds,
        "generateAudio": generate_audio,
        "enhancePrompt": enhance_prompt,
    }
    if storage_uri:
        parameters["storageUri"] = storage_uri
    if resolution:
        parameters["resolution"] = resolution
    if aspect_ratio:
        parameters["aspectRatio"] = aspect_ratio
    if sample_count is not None:
        parameters["sampleCount"] = sample_count

    return {"instances": [instance], "parameters": parameters}


class VeoClient:
    """Submit and poll Veo predictions on Vertex AI."""

    def __init__(
        self,
        project: str,
        location: str,
        token_source: Any,
        *,
        timeout_connect: float = 10.0,
        timeout_read: float = 120.0,
    ) -> None:
        if not project:
            raise InvalidConfigError("missing Google Cloud project id for Veo")
        if not location:
            raise InvalidConfigError("missing Google Cloud location for Veo")
        self.project = project
        self.location = location
        self.token_source = token_source
        self.timeout_connect = timeout_connect
        self.timeout_read = timeout_read

    @property
    def _timeout(self) -> Tuple[float, float]:
        return (self.timeout_connect, self.timeout_read)

    def endpoint(self, model: str, method: str) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project}"
            f"/locations/{self.location}/publishers/google/models/{model}:{method}"
        )

    def submit(self, model: str, payload: Dict[str, Any]) -> str:
        """Start a prediction and return the operation name."""
        data = self._post(model, "predictLongRunning", payload)
        name = data.get("name") if isinstance(data, Mapping) else None
        if not name:
            raise InvalidResponseError(f"Veo predictLongRunning response missing operation name: {data}")
        logger.info("Veo operation started: %s", name)
        return str(name)

    def fetch_operation(self, model: str, operation_name: str) -> OperationState:
        data = self._post(model, "fetchPredictOperation", {"operationName": operation_name})
        return OperationState.from_payload(data, fallback_name=operation_name)

    def _post(self, model: str, method: str, body: Dict[str, Any]) -> Any:
        token = self.token_source.access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        url = self.endpoint(model, method)
        try:
            start = time.monotonic()
            response = requests.post(url, json=body, headers=headers, timeout=self._timeout)
            elapsed = time.monotonic() - start
        except requests.RequestException as exc:
            raise TransportError(f"Veo {method} request failed: {exc}") from exc
        logger.debug("Veo %s response: status=%s elapsed=%.2fs", method, response.status_code, elapsed)

        if not 200 <= response.status_code < 300:
            body_text = (getattr(response, "text", "") or "").strip() or "<no body>"
            raise JobFailedError(f"Veo {method} failed ({response.status_code}): {body_text}")
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponseError(f"Veo {method} response is not JSON: {exc}") from exc

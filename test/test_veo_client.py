from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Any, List

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import veo_client  # noqa: E402
from clip_errors import (  # noqa: E402
    CredentialHelperError,
    InvalidConfigError,
    MissingCredentialError,
)
from veo_client import (  # noqa: E402
    GcloudTokenSource,
    OperationState,
    StaticTokenSource,
    VeoClient,
    build_predict_payload,
)


def _fake_run(returncode: int, stdout: bytes) -> Any:
    calls: List[List[str]] = []

    def run(cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        calls.append(list(cmd))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=b"")

    run.calls = calls  # type: ignore[attr-defined]
    return run


def test_gcloud_token_is_trimmed(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _fake_run(0, b"  ya29.token-value\n")
    monkeypatch.setattr(veo_client.subprocess, "run", fake)

    assert GcloudTokenSource().access_token() == "ya29.token-value"
    assert fake.calls == [["gcloud", "auth", "print-access-token"]]


def test_gcloud_empty_output_is_missing_credential(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(veo_client.subprocess, "run", _fake_run(0, b"\n"))

    with pytest.raises(MissingCredentialError):
        GcloudTokenSource().access_token()


def test_gcloud_missing_binary_is_missing_credential(monkeypatch: pytest.MonkeyPatch) -> None:
    def run(cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(veo_client.subprocess, "run", run)

    with pytest.raises(MissingCredentialError, match="gcloud not found"):
        GcloudTokenSource().access_token()


def test_gcloud_nonzero_exit_is_helper_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(veo_client.subprocess, "run", _fake_run(1, b""))

    with pytest.raises(CredentialHelperError, match="status 1"):
        GcloudTokenSource().access_token()


def test_static_token_must_not_be_blank() -> None:
    with pytest.raises(MissingCredentialError):
        StaticTokenSource(" ")


def test_client_requires_project_and_location() -> None:
    with pytest.raises(InvalidConfigError, match="project"):
        VeoClient("", "us-central1", StaticTokenSource("tok"))
    with pytest.raises(InvalidConfigError, match="location"):
        VeoClient("demo", "", StaticTokenSource("tok"))


def test_payload_includes_optional_keys_only_when_set() -> None:
    minimal = build_predict_payload("a lighthouse", duration_seconds=6, generate_audio=False, enhance_prompt=True)
    assert minimal == {
        "instances": [{"prompt": "a lighthouse"}],
        "parameters": {"durationSeconds": 6, "generateAudio": False, "enhancePrompt": True},
    }

    full = build_predict_payload(
        "a lighthouse",
        duration_seconds=4,
        generate_audio=True,
        enhance_prompt=False,
        image={"gcsUri": "gs://bucket/frame.png", "mimeType": "image/png"},
        storage_uri="gs://bucket/out/",
        resolution="1080p",
        aspect_ratio="16:9",
        sample_count=1,
    )
    assert full["instances"][0]["image"]["gcsUri"] == "gs://bucket/frame.png"
    assert full["parameters"]["storageUri"] == "gs://bucket/out/"
    assert full["parameters"]["sampleCount"] == 1


def test_operation_state_parsing() -> None:
    state = OperationState.from_payload(
        {
            "name": "operations/op-1",
            "done": True,
            "response": {
                "@type": "type.googleapis.com/cloud.ai.large_models.vision.GenerateVideoResponse",
                "videos": [{"gcsUri": "gs://bucket/a.mp4", "mimeType": "video/mp4"}],
            },
        }
    )
    assert state.done
    assert state.has_response
    assert state.videos[0].gcs_uri == "gs://bucket/a.mp4"
    assert state.videos[0].bytes_base64_encoded is None

    pending = OperationState.from_payload({}, fallback_name="operations/op-2")
    assert pending.name == "operations/op-2"
    assert not pending.done
    assert not pending.has_response

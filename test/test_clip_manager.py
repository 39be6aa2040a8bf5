from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path
from typing import Any, List, Tuple

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from clip_errors import (  # noqa: E402
    ClipNotFoundError,
    ConcatenationFailedError,
    InvalidConfigError,
    JobFailedError,
    MetadataNotFoundError,
    ToolMissingError,
    UnsupportedOperationError,
)
from clip_manager import ClipManager, resolve_setting  # noqa: E402
from clip_models import (  # noqa: E402
    ContinueClipRequest,
    CreateClipRequest,
    ProviderKind,
    RenderOutcome,
    RenderRequest,
    VideoVariant,
)
from media_tools import MediaToolkit, runner  # noqa: E402
from render_backends import BackendDefaults, RenderBackend  # noqa: E402


class StubBackend(RenderBackend):
    def __init__(self, kind: ProviderKind = ProviderKind.SORA, fail: bool = False) -> None:
        super().__init__(BackendDefaults(model="stub-model", size="1280x720", seconds=12))
        self.kind = kind
        self.fail = fail
        self.requests: List[RenderRequest] = []
        self.seed_existed: List[bool] = []
        self.downloads: List[Tuple[str, VideoVariant, Path]] = []

    def render(self, request: RenderRequest) -> RenderOutcome:
        self.requests.append(request)
        self.seed_existed.append(request.seed_image_path is not None and request.seed_image_path.exists())
        if self.fail:
            raise JobFailedError("moderation blocked")
        request.output_path.write_bytes(f"video:{request.prompt}".encode("utf-8"))
        return RenderOutcome(
            remote_id=f"remote-{len(self.requests)}",
            model=request.model,
            size=request.size,
            seconds=request.seconds,
            created_at=1700000000 + len(self.requests),
        )

    def download(self, remote_id: str, variant: VideoVariant, output_path: Path) -> None:
        self.downloads.append((remote_id, variant, output_path))
        output_path.write_bytes(b"asset")


class FakeToolkit(MediaToolkit):
    """Frame extraction and concat without ffmpeg."""

    def __init__(self, temp_dir: Path, concat_fails: bool = False) -> None:
        super().__init__(temp_dir=temp_dir)
        self.concat_fails = concat_fails
        self.extracted: List[Tuple[Path, str]] = []
        self.manifests: List[str] = []

    def extract_last_frame(self, video_path: Path, local_id: str) -> Path:
        self.extracted.append((video_path, local_id))
        frame = self.seed_frame_path(local_id)
        frame.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (16, 9), (0, 128, 0)).save(frame)
        return frame

    def concat(self, manifest_path: Path, output_path: Path) -> Path:
        self.manifests.append(manifest_path.read_text(encoding="utf-8"))
        if self.concat_fails:
            raise ConcatenationFailedError(1, "muxer error")
        output_path.write_bytes(b"joined")
        return output_path


@pytest.fixture
def toolkit(tmp_path: Path) -> FakeToolkit:
    return FakeToolkit(tmp_path / "tmp")


def _manager(tmp_path: Path, backend: RenderBackend, toolkit: MediaToolkit) -> ClipManager:
    return ClipManager(backend, data_dir=tmp_path / "videos", poll_interval=0, media=toolkit)


def test_resolve_setting_prefers_first_present_value() -> None:
    assert resolve_setting(None, "parent", "default") == "parent"
    assert resolve_setting(0, 8, 12) == 0
    assert resolve_setting(None, None) is None


def test_create_records_metadata_and_video(tmp_path: Path, toolkit: FakeToolkit) -> None:
    backend = StubBackend()
    manager = _manager(tmp_path, backend, toolkit)

    metadata = manager.create(CreateClipRequest(prompt="a dog runs", local_id="intro", seconds=4))

    assert metadata.model == "stub-model"
    assert metadata.seconds == 4
    assert metadata.parent is None
    assert metadata.backend_kind is ProviderKind.SORA
    assert manager.video_path("intro").read_bytes() == b"video:a dog runs"
    saved = json.loads(manager.metadata_path("intro").read_text(encoding="utf-8"))
    assert saved["remote_id"] == "remote-1"
    assert saved["backend_kind"] == "sora"
    assert backend.requests[0].seed_image_path is None
    assert toolkit.extracted == []


def test_continue_inherits_parent_settings_and_cleans_seed(tmp_path: Path, toolkit: FakeToolkit) -> None:
    backend = StubBackend()
    manager = _manager(tmp_path, backend, toolkit)
    manager.create(CreateClipRequest(prompt="a dog runs", local_id="intro", size="720x1280", seconds=8))

    child = manager.continue_clip(
        ContinueClipRequest(parent_local_id="intro", local_id="next", prompt="the dog jumps")
    )

    request = backend.requests[1]
    assert (request.size, request.seconds, request.model) == ("720x1280", 8, "stub-model")
    assert request.seed_image_path == toolkit.seed_frame_path("next")
    assert backend.seed_existed[1] is True
    assert not toolkit.seed_frame_path("next").exists()
    assert toolkit.extracted == [(manager.video_path("intro"), "next")]
    assert child.parent == "intro"


def test_continue_overrides_win_over_parent(tmp_path: Path, toolkit: FakeToolkit) -> None:
    backend = StubBackend()
    manager = _manager(tmp_path, backend, toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="intro", seconds=8))

    manager.continue_clip(
        ContinueClipRequest(parent_local_id="intro", local_id="next", prompt="b", model="other", seconds=4)
    )

    assert (backend.requests[1].model, backend.requests[1].seconds) == ("other", 4)


def test_seed_removed_when_render_fails(tmp_path: Path, toolkit: FakeToolkit) -> None:
    backend = StubBackend()
    manager = _manager(tmp_path, backend, toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="intro"))
    backend.fail = True

    with pytest.raises(JobFailedError):
        manager.continue_clip(ContinueClipRequest(parent_local_id="intro", local_id="next", prompt="b"))

    assert not toolkit.seed_frame_path("next").exists()
    assert not manager.metadata_path("next").exists()


@pytest.mark.parametrize("kind", list(ProviderKind))
def test_duplicate_local_id_is_rejected_before_render(
    tmp_path: Path, toolkit: FakeToolkit, kind: ProviderKind
) -> None:
    backend = StubBackend(kind=kind)
    manager = _manager(tmp_path, backend, toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="intro"))

    with pytest.raises(InvalidConfigError, match="already exists"):
        manager.create(CreateClipRequest(prompt="b", local_id="intro"))
    with pytest.raises(InvalidConfigError, match="already exists"):
        manager.continue_clip(ContinueClipRequest(parent_local_id="intro", local_id="intro", prompt="c"))
    assert len(backend.requests) == 1


def test_continue_from_unknown_parent(tmp_path: Path, toolkit: FakeToolkit) -> None:
    manager = _manager(tmp_path, StubBackend(), toolkit)

    with pytest.raises(MetadataNotFoundError):
        manager.continue_clip(ContinueClipRequest(parent_local_id="ghost", local_id="next", prompt="b"))


def test_missing_parent_media_fails_before_extraction(tmp_path: Path, toolkit: FakeToolkit) -> None:
    backend = StubBackend()
    manager = _manager(tmp_path, backend, toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="intro"))
    manager.video_path("intro").unlink()

    with pytest.raises(ClipNotFoundError, match="intro"):
        manager.continue_clip(ContinueClipRequest(parent_local_id="intro", local_id="next", prompt="b"))

    assert toolkit.extracted == []
    assert len(backend.requests) == 1


def test_list_skips_corrupt_metadata(tmp_path: Path, toolkit: FakeToolkit) -> None:
    manager = _manager(tmp_path, StubBackend(), toolkit)
    manager.create(CreateClipRequest(prompt="b", local_id="zeta"))
    manager.create(CreateClipRequest(prompt="a", local_id="alpha"))
    manager.metadata_path("broken").write_text("{not json", encoding="utf-8")

    clips = manager.list_clips()

    assert [clip.local_id for clip in clips] == ["alpha", "zeta"]


def test_list_on_empty_directory(tmp_path: Path, toolkit: FakeToolkit) -> None:
    assert _manager(tmp_path, StubBackend(), toolkit).list_clips() == []


def test_download_delegates_to_matching_backend(tmp_path: Path, toolkit: FakeToolkit) -> None:
    backend = StubBackend()
    manager = _manager(tmp_path, backend, toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="intro"))
    output = tmp_path / "out" / "thumb.webp"

    result = manager.download_asset("intro", VideoVariant.THUMBNAIL, output)

    assert result == output
    assert backend.downloads == [("remote-1", VideoVariant.THUMBNAIL, output)]


def test_veo_video_download_copies_local_file(tmp_path: Path, toolkit: FakeToolkit) -> None:
    backend = StubBackend(kind=ProviderKind.VEO)
    manager = _manager(tmp_path, backend, toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="intro"))
    output = tmp_path / "copy.mp4"

    manager.download_asset("intro", VideoVariant.VIDEO, output)

    assert output.read_bytes() == b"video:a"
    assert backend.downloads == []


def test_download_from_other_backend_is_unsupported(tmp_path: Path, toolkit: FakeToolkit) -> None:
    _manager(tmp_path, StubBackend(kind=ProviderKind.VEO), toolkit).create(
        CreateClipRequest(prompt="a", local_id="intro")
    )
    sora_manager = _manager(tmp_path, StubBackend(kind=ProviderKind.SORA), toolkit)

    with pytest.raises(UnsupportedOperationError):
        sora_manager.download_asset("intro", VideoVariant.THUMBNAIL, tmp_path / "thumb.webp")


def test_stitch_writes_ordered_manifest_and_removes_it(tmp_path: Path, toolkit: FakeToolkit) -> None:
    manager = _manager(tmp_path, StubBackend(), toolkit)
    for local_id in ("a", "b"):
        manager.create(CreateClipRequest(prompt=local_id, local_id=local_id))

    output = manager.stitch("full", ["b", "a", "b"])

    assert output == manager.video_path("full")
    assert output.read_bytes() == b"joined"
    lines = toolkit.manifests[0].splitlines()
    assert lines[1:] == [
        f"file '{manager.video_path('b').resolve()}'",
        f"file '{manager.video_path('a').resolve()}'",
        f"file '{manager.video_path('b').resolve()}'",
    ]
    assert not (manager.data_dir / ".concat-full.txt").exists()


def test_stitch_failure_still_removes_manifest(tmp_path: Path) -> None:
    toolkit = FakeToolkit(tmp_path / "tmp", concat_fails=True)
    manager = _manager(tmp_path, StubBackend(), toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="a"))

    with pytest.raises(ConcatenationFailedError):
        manager.stitch("full", ["a"])
    assert not (manager.data_dir / ".concat-full.txt").exists()


@pytest.mark.parametrize("inputs", [[], ["a", "full"]])
def test_stitch_rejects_bad_input_lists(tmp_path: Path, toolkit: FakeToolkit, inputs: List[str]) -> None:
    manager = _manager(tmp_path, StubBackend(), toolkit)

    with pytest.raises(InvalidConfigError):
        manager.stitch("full", inputs)
    assert toolkit.manifests == []


def test_stitch_with_missing_media(tmp_path: Path, toolkit: FakeToolkit) -> None:
    manager = _manager(tmp_path, StubBackend(), toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="a"))
    manager.video_path("a").unlink()

    with pytest.raises(ClipNotFoundError):
        manager.stitch("full", ["a"])
    assert toolkit.manifests == []


def test_get_metadata_for_unknown_id(tmp_path: Path, toolkit: FakeToolkit) -> None:
    manager = _manager(tmp_path, StubBackend(), toolkit)

    with pytest.raises(MetadataNotFoundError):
        manager.get_metadata("ghost")


class StuckSeedToolkit(FakeToolkit):
    """Leaves a non-empty directory where the seed image would be, so deleting it fails."""

    def extract_last_frame(self, video_path: Path, local_id: str) -> Path:
        self.extracted.append((video_path, local_id))
        frame = self.seed_frame_path(local_id)
        frame.mkdir(parents=True, exist_ok=True)
        (frame / "keep").write_bytes(b"x")
        return frame


def test_seed_cleanup_failure_does_not_fail_continuation(tmp_path: Path) -> None:
    toolkit = StuckSeedToolkit(tmp_path / "tmp")
    manager = _manager(tmp_path, StubBackend(), toolkit)
    manager.create(CreateClipRequest(prompt="a", local_id="intro"))

    child = manager.continue_clip(ContinueClipRequest(parent_local_id="intro", local_id="next", prompt="b"))

    assert child.parent == "intro"
    assert manager.metadata_path("next").exists()
    assert toolkit.seed_frame_path("next").is_dir()


def _unlaunchable_ffmpeg(monkeypatch: pytest.MonkeyPatch) -> None:
    def run(cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        raise PermissionError(13, "Permission denied", cmd[0])

    monkeypatch.setattr(runner.subprocess, "run", run)


def test_continue_with_unlaunchable_ffmpeg_raises_tool_missing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _unlaunchable_ffmpeg(monkeypatch)
    backend = StubBackend()
    manager = _manager(tmp_path, backend, MediaToolkit(ffmpeg_path="/opt/ffmpeg", temp_dir=tmp_path / "tmp"))
    manager.create(CreateClipRequest(prompt="a", local_id="intro"))

    with pytest.raises(ToolMissingError, match="Permission denied"):
        manager.continue_clip(ContinueClipRequest(parent_local_id="intro", local_id="next", prompt="b"))

    assert len(backend.requests) == 1
    assert not manager.metadata_path("next").exists()


def test_stitch_with_unlaunchable_ffmpeg_raises_tool_missing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _unlaunchable_ffmpeg(monkeypatch)
    manager = _manager(tmp_path, StubBackend(), MediaToolkit(ffmpeg_path="/opt/ffmpeg", temp_dir=tmp_path / "tmp"))
    manager.create(CreateClipRequest(prompt="a", local_id="a"))

    with pytest.raises(ToolMissingError):
        manager.stitch("full", ["a"])

    assert not (manager.data_dir / ".concat-full.txt").exists()
    assert not manager.video_path("full").exists()

"""Clip lifecycle orchestration: create, continue, list, download and stitch."""
from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import List, Optional, Sequence, TypeVar

from backend_factory import make_backend
from clip_errors import (
    ClipNotFoundError,
    InvalidConfigError,
    LocalIOError,
    MetadataNotFoundError,
    UnsupportedOperationError,
)
from clip_models import (
    ClipMetadata,
    ContinueClipRequest,
    CreateClipRequest,
    ProviderKind,
    RenderOutcome,
    RenderRequest,
    VideoVariant,
)
from config_loader import ContinuatorConfig
from logging_utils import get_logger
from media_tools import MediaToolkit
from media_tools.concat import write_manifest
from render_backends import RenderBackend

logger = get_logger(__name__)

MEDIA_EXTENSION = ".mp4"
METADATA_EXTENSION = ".json"

T = TypeVar("T")


def resolve_setting(*candidates: Optional[T]) -> Optional[T]:
    """Return the first candidate that is not None.

    Callers pass candidates in precedence order: request override, parent
    clip value, backend default.
    """
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


class ClipManager:
    """Own the data directory and drive one render backend through the clip lifecycle."""

    def __init__(
        self,
        backend: RenderBackend,
        *,
        data_dir: Path,
        poll_interval: float,
        media: Optional[MediaToolkit] = None,
    ) -> None:
        self.backend = backend
        self.data_dir = Path(data_dir)
        self.poll_interval = poll_interval
        self.media = media or MediaToolkit()

    @classmethod
    def from_config(cls, config: ContinuatorConfig) -> "ClipManager":
        backend = make_backend(config)
        media = MediaToolkit(
            ffmpeg_path=config.ffmpeg_path or "ffmpeg",
            temp_dir=config.temp_dir,
        )
        logger.debug("Clip manager config: %s", config.dumps())
        return cls(
            backend,
            data_dir=config.resolved_data_dir,
            poll_interval=config.poll_interval,
            media=media,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create(self, request: CreateClipRequest) -> ClipMetadata:
        """Render a brand-new clip and record it under ``request.local_id``."""
        self._ensure_data_dir()
        self._guard_new_id(request.local_id)

        defaults = self.backend.defaults
        video_path = self.video_path(request.local_id)
        outcome = self.backend.render(
            RenderRequest(
                prompt=request.prompt,
                model=resolve_setting(request.model, defaults.model),
                size=resolve_setting(request.size, defaults.size),
                seconds=resolve_setting(request.seconds, defaults.seconds),
                output_path=video_path,
                poll_interval=self.poll_interval,
            )
        )

        metadata = self._build_metadata(request.local_id, request.prompt, outcome, video_path, parent=None)
        self._save_metadata(metadata)
        logger.info("Created clip %s (remote id %s)", metadata.local_id, metadata.remote_id)
        return metadata

    def continue_clip(self, request: ContinueClipRequest) -> ClipMetadata:
        """Render a clip seeded with the last frame of ``request.parent_local_id``.

        Settings not given on the request are inherited from the parent clip
        before falling back to backend defaults.
        """
        self._ensure_data_dir()
        self._guard_new_id(request.local_id)

        parent = self._load_metadata(request.parent_local_id)
        parent_video = self._locate_media(parent)

        defaults = self.backend.defaults
        video_path = self.video_path(request.local_id)
        with self.media.last_frame(parent_video, request.local_id) as seed_image:
            logger.info("Continuing %s from %s (seed frame %s)", request.local_id, parent.local_id, seed_image)
            outcome = self.backend.render(
                RenderRequest(
                    prompt=request.prompt,
                    model=resolve_setting(request.model, parent.model, defaults.model),
                    size=resolve_setting(request.size, parent.size, defaults.size),
                    seconds=resolve_setting(request.seconds, parent.seconds, defaults.seconds),
                    output_path=video_path,
                    seed_image_path=seed_image,
                    poll_interval=self.poll_interval,
                )
            )
            metadata = self._build_metadata(
                request.local_id,
                request.prompt,
                outcome,
                video_path,
                parent=parent.local_id,
            )
            self._save_metadata(metadata)

        logger.info("Created continuation %s (parent %s)", metadata.local_id, metadata.parent)
        return metadata

    def list_clips(self) -> List[ClipMetadata]:
        """Return every readable metadata record, sorted by local id."""
        self._ensure_data_dir()
        entries: List[ClipMetadata] = []
        for path in self.data_dir.glob(f"*{METADATA_EXTENSION}"):
            try:
                entries.append(self._read_metadata_file(path))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.debug("Skipping unreadable metadata %s: %s", path.name, exc)
        entries.sort(key=lambda item: item.local_id)
        return entries

    def get_metadata(self, local_id: str) -> ClipMetadata:
        return self._load_metadata(local_id)

    def download_asset(self, local_id: str, variant: VideoVariant, output_path: Path) -> Path:
        """Write ``variant`` of a recorded clip to ``output_path``."""
        metadata = self._load_metadata(local_id)
        output_path = Path(output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalIOError(f"failed to create {output_path.parent}: {exc}") from exc

        # Veo never exposes a content endpoint; the local file is the only copy
        if metadata.backend_kind is ProviderKind.VEO and variant is VideoVariant.VIDEO:
            source = self._locate_media(metadata)
            try:
                shutil.copyfile(source, output_path)
            except OSError as exc:
                raise LocalIOError(f"failed to copy {source} -> {output_path}: {exc}") from exc
            return output_path

        if metadata.backend_kind is not self.backend.kind:
            raise UnsupportedOperationError(
                f"clip '{local_id}' was rendered by {metadata.backend_kind.value}; "
                f"the active backend is {self.backend.kind.value}"
            )

        self.backend.download(metadata.remote_id, variant, output_path)
        return output_path

    def stitch(self, output_local_id: str, input_local_ids: Sequence[str]) -> Path:
        """Concatenate recorded clips, in order, into ``<data_dir>/<output_local_id>.mp4``."""
        if not input_local_ids:
            raise InvalidConfigError("stitch requires at least one input clip")
        if output_local_id in input_local_ids:
            raise InvalidConfigError(
                f"stitch output '{output_local_id}' must not be one of its inputs"
            )

        self._ensure_data_dir()
        inputs: List[Path] = []
        for local_id in input_local_ids:
            metadata = self._load_metadata(local_id)
            inputs.append(self._locate_media(metadata).resolve())

        output_path = self.video_path(output_local_id)
        manifest_path = self.data_dir / f".concat-{output_local_id}.txt"
        try:
            try:
                write_manifest(inputs, manifest_path)
            except OSError as exc:
                raise LocalIOError(f"failed to write concat manifest {manifest_path}: {exc}") from exc
            self.media.concat(manifest_path, output_path)
        finally:
            self.media.discard(manifest_path)

        logger.info("Stitched %d clips -> %s", len(inputs), output_path)
        return output_path

    # ------------------------------------------------------------------
    # Filesystem layout
    # ------------------------------------------------------------------

    def video_path(self, local_id: str) -> Path:
        return self.data_dir / f"{local_id}{MEDIA_EXTENSION}"

    def metadata_path(self, local_id: str) -> Path:
        return self.data_dir / f"{local_id}{METADATA_EXTENSION}"

    def _ensure_data_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalIOError(f"failed to create data directory {self.data_dir}: {exc}") from exc

    def _guard_new_id(self, local_id: str) -> None:
        # Not atomic: two managers sharing a data directory can both pass this check
        if self.metadata_path(local_id).exists():
            raise InvalidConfigError(f"local id '{local_id}' already exists")

    def _locate_media(self, metadata: ClipMetadata) -> Path:
        for candidate in (metadata.file_path, self.video_path(metadata.local_id)):
            if candidate.is_file():
                return candidate
        raise ClipNotFoundError(metadata.local_id)

    def _build_metadata(
        self,
        local_id: str,
        prompt: str,
        outcome: RenderOutcome,
        video_path: Path,
        *,
        parent: Optional[str],
    ) -> ClipMetadata:
        return ClipMetadata(
            local_id=local_id,
            remote_id=outcome.remote_id,
            prompt=prompt,
            model=outcome.model,
            seconds=outcome.seconds,
            size=outcome.size,
            created_at=outcome.created_at,
            file_path=video_path,
            parent=parent,
            backend_kind=self.backend.kind,
        )

    def _save_metadata(self, metadata: ClipMetadata) -> None:
        path = self.metadata_path(metadata.local_id)
        try:
            path.write_text(json.dumps(metadata.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            raise LocalIOError(f"failed to write metadata {path}: {exc}") from exc

    def _load_metadata(self, local_id: str) -> ClipMetadata:
        path = self.metadata_path(local_id)
        if not path.is_file():
            raise MetadataNotFoundError(local_id)
        try:
            return self._read_metadata_file(path)
        except OSError as exc:
            raise LocalIOError(f"failed to read metadata {path}: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise LocalIOError(f"corrupt metadata {path}: {exc}") from exc

    @staticmethod
    def _read_metadata_file(path: Path) -> ClipMetadata:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ClipMetadata.from_dict(data)

"""Single entry point the clip manager uses for every ffmpeg operation."""
from __future__ import annotations

import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from logging_utils import get_logger
from .concat import concat_streamcopy
from .frames import extract_last_frame

logger = get_logger(__name__)


class MediaToolkit:
    """Frame extraction and stream-copy concatenation through one ffmpeg binary."""

    def __init__(self, *, ffmpeg_path: str = "ffmpeg", temp_dir: Optional[Path] = None) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())

    def seed_frame_path(self, local_id: str) -> Path:
        return self.temp_dir / f"{local_id}_last.png"

    def extract_last_frame(self, video_path: Path, local_id: str) -> Path:
        return extract_last_frame(video_path, self.seed_frame_path(local_id), ffmpeg_path=self.ffmpeg_path)

    @contextmanager
    def last_frame(self, video_path: Path, local_id: str) -> Iterator[Path]:
        """Extract the seed frame for ``local_id`` and delete it when the block exits."""
        frame_path = self.seed_frame_path(local_id)
        try:
            yield self.extract_last_frame(video_path, local_id)
        finally:
            self.discard(frame_path)

    def concat(self, manifest_path: Path, output_path: Path) -> Path:
        return concat_streamcopy(manifest_path, output_path, ffmpeg_path=self.ffmpeg_path)

    @staticmethod
    def discard(path: Path) -> None:
        """Best-effort removal of a temporary file."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.debug("Failed to remove temporary file %s: %s", path, exc)

"""Still-frame helpers: last-frame extraction and seed image preparation."""
from __future__ import annotations

import io
import re
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from clip_errors import ExtractionFailedError, LocalIOError
from logging_utils import get_logger
from .runner import run_ffmpeg

logger = get_logger(__name__)

DEFAULT_IMAGE_MIME = "image/png"

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


def extract_last_frame(video_path: Path, frame_path: Path, *, ffmpeg_path: str = "ffmpeg") -> Path:
    """Write the final frame of ``video_path`` to ``frame_path`` as a still image.

    Seeks to the last second and keeps overwriting one image file, so the
    frame left on disk is the clip's final frame.
    """
    try:
        frame_path.parent.mkdir(parents=True, exist_ok=True)
        frame_path.unlink(missing_ok=True)
    except OSError as exc:
        raise LocalIOError(f"failed to prepare seed frame {frame_path}: {exc}") from exc

    args = [
        "-sseof",
        "-1",
        "-i",
        str(video_path),
        "-an",
        "-update",
        "1",
        "-y",
        str(frame_path),
    ]
    run_ffmpeg(args, ffmpeg_path=ffmpeg_path, failure=ExtractionFailedError)

    if not frame_path.exists():
        raise ExtractionFailedError(0, f"no frame written to {frame_path}")
    logger.debug("Extracted last frame: %s -> %s", video_path, frame_path)
    return frame_path


def parse_size(size: str) -> Optional[Tuple[int, int]]:
    """Parse ``"1280x720"`` into ``(1280, 720)``; anything else yields None."""
    match = _SIZE_PATTERN.match(size or "")
    if not match:
        return None
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        return None
    return width, height


def image_mime_type(path: Path) -> str:
    try:
        with Image.open(path) as img:
            fmt = img.format
    except (OSError, UnidentifiedImageError):
        logger.debug("Could not identify image format for %s; assuming %s", path, DEFAULT_IMAGE_MIME)
        return DEFAULT_IMAGE_MIME
    return Image.MIME.get(fmt or "", DEFAULT_IMAGE_MIME)


def conform_image(path: Path, size: str) -> Tuple[bytes, str]:
    """Return image bytes and MIME type, cover-cropped to ``size`` when it differs.

    Images already at the target size, or targets that are not ``WxH``, are
    returned as the original bytes.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise LocalIOError(f"failed to read seed image {path}: {exc}") from exc

    target = parse_size(size)
    try:
        with Image.open(io.BytesIO(raw)) as src:
            mime = Image.MIME.get(src.format or "", DEFAULT_IMAGE_MIME)
            if target is None or src.size == target:
                return raw, mime
            logger.info("Resizing seed image %s from %sx%s to %sx%s", path.name, *src.size, *target)
            fitted = ImageOps.fit(
                src.convert("RGB"),
                target,
                method=Image.Resampling.LANCZOS,
                centering=(0.5, 0.5),
            )
    except (OSError, UnidentifiedImageError) as exc:
        raise LocalIOError(f"seed image is not a readable image: {path}") from exc

    buffer = io.BytesIO()
    fitted.save(buffer, format="PNG")
    return buffer.getvalue(), "image/png"

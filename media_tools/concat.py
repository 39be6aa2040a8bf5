from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from clip_errors import ConcatenationFailedError
from logging_utils import get_logger
from .runner import run_ffmpeg

logger = get_logger(__name__)


def _quote(path: Path) -> str:
    # concat demuxer syntax: close the quote, emit an escaped quote, reopen
    return "'" + str(path).replace("'", "'\\''") + "'"


def write_manifest(inputs: Iterable[Path], manifest_path: Path) -> Path:
    """Write an ffconcat list naming ``inputs`` in order."""
    files = [Path(p) for p in inputs]
    if not files:
        raise ValueError("concat manifest needs at least one input")
    lines = ["ffconcat version 1.0"] + [f"file {_quote(p)}" for p in files]
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    manifest_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.debug("concat: list file => %s (%d segments)", manifest_path, len(files))
    return manifest_path


def concat_streamcopy(manifest_path: Path, output_path: Path, *, ffmpeg_path: str = "ffmpeg") -> Path:
    """Join the clips listed in ``manifest_path`` into ``output_path`` without re-encoding.

    On failure any partially written output is removed before the error propagates.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    args: List[str] = [
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(manifest_path),
        "-c",
        "copy",
        "-y",
        str(output_path),
    ]
    try:
        run_ffmpeg(args, ffmpeg_path=ffmpeg_path, failure=ConcatenationFailedError)
    except ConcatenationFailedError:
        try:
            content = manifest_path.read_text(encoding="utf-8").splitlines()
            logger.error("concat list head: %s", " | ".join(content[:5]))
            logger.error("concat list tail: %s", " | ".join(content[-5:]))
        except OSError:
            pass
        output_path.unlink(missing_ok=True)
        raise
    return output_path

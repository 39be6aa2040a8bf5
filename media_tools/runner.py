from __future__ import annotations

import shlex
import subprocess
from typing import List, Sequence, Type

from clip_errors import MediaToolFailedError, ToolMissingError
from logging_utils import get_logger

logger = get_logger(__name__)


def run_ffmpeg(
    args: Sequence[str],
    *,
    ffmpeg_path: str = "ffmpeg",
    failure: Type[MediaToolFailedError] = MediaToolFailedError,
) -> None:
    """Run ffmpeg with the given arguments.

    A missing or non-executable binary raises ``ToolMissingError``; a non-zero
    exit raises ``failure`` carrying the exit status. The tail of stderr is logged.
    """
    # Keep ffmpeg quiet: only errors; no stats; no banner
    cmd: List[str] = [ffmpeg_path, "-hide_banner", "-loglevel", "error", "-nostats"] + list(args)
    logger.debug("FFmpeg: %s", shlex.join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as exc:
        raise ToolMissingError(ffmpeg_path) from exc
    except OSError as exc:
        raise ToolMissingError(ffmpeg_path, reason=exc.strerror or str(exc)) from exc

    if proc.returncode != 0:
        tail = (proc.stderr or "").splitlines()[-50:]
        for line in tail:
            logger.error("ffmpeg: %s", line)
        raise failure(proc.returncode, tail[-1] if tail else None)

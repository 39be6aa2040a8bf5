"""FFmpeg helpers for clip continuation and stitching.

Modules:
- runner: Subprocess execution and error mapping
- frames: Last-frame extraction and seed image preparation
- concat: Manifest writing and stream-copy concatenation
- toolkit: MediaToolkit used by the clip manager
"""

from .toolkit import MediaToolkit

__all__ = ["MediaToolkit"]

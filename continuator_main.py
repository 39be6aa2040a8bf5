"""Command line entry for generating and extending video clips."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from clip_errors import ContinuatorError, InvalidConfigError
from clip_manager import ClipManager
from clip_models import ClipMetadata, ContinueClipRequest, CreateClipRequest, ProviderKind, VideoVariant
from config_loader import ContinuatorConfig, load_config, parse_bool
from logging_utils import configure_logging, get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


def _bool_arg(value: str) -> bool:
    try:
        return parse_bool(value)
    except InvalidConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _add_render_overrides(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", dest="clip_model", help="Override the model for this clip.")
    parser.add_argument("--size", dest="clip_size", help="Override the size for this clip.")
    parser.add_argument("--seconds", dest="clip_seconds", type=int, help="Override the duration in seconds.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate and extend video clips via Sora or Veo")
    parser.add_argument(
        "--config",
        type=Path,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH} when present)",
    )
    parser.add_argument(
        "--provider",
        choices=[kind.value for kind in ProviderKind],
        help="Video generation backend (sora or veo).",
    )
    parser.add_argument("--api-key", help="Override the OpenAI API key (defaults to OPENAI_API_KEY).")
    parser.add_argument("--model", help="Default model (e.g. sora-2, sora-2-pro, veo-3.0-generate-preview).")
    parser.add_argument("--size", help="Default output size (e.g. 1280x720).")
    parser.add_argument("--seconds", type=int, help="Default clip length in seconds.")
    parser.add_argument("--data-dir", type=Path, help="Directory for videos and metadata (default: ./videos).")
    parser.add_argument("--poll-interval-ms", type=int, help="Poll interval in milliseconds while waiting for renders.")
    parser.add_argument("--gcp-project", help="Google Cloud project id for Veo.")
    parser.add_argument("--gcp-location", help="Google Cloud location for Veo (e.g. us-central1).")
    parser.add_argument("--gcp-access-token", help="Pre-fetched Google Cloud access token for Veo requests.")
    parser.add_argument("--gcp-storage-uri", help="Cloud Storage URI for Veo outputs instead of inline bytes.")
    parser.add_argument("--gcp-generate-audio", type=_bool_arg, help="Whether Veo should generate audio (default true).")
    parser.add_argument("--gcp-resolution", help="Preferred Veo resolution (720p or 1080p).")
    parser.add_argument("--gcp-enhance-prompt", type=_bool_arg, help="Whether Veo may enhance prompts (default true).")
    parser.add_argument("--log-level", help="Logging level (default INFO).")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create a brand-new clip.")
    create.add_argument("--id", dest="local_id", required=True, help="Local identifier used for filenames.")
    create.add_argument("--prompt", required=True, help="Prompt describing the clip.")
    _add_render_overrides(create)

    cont = subparsers.add_parser("continue", help="Continue an existing clip from its last frame.")
    cont.add_argument("--from", dest="parent_id", required=True, help="Local identifier of the clip to extend.")
    cont.add_argument("--id", dest="local_id", required=True, help="Local identifier for the new clip.")
    cont.add_argument("--prompt", required=True, help="Prompt defining the next beat of the scene.")
    _add_render_overrides(cont)

    subparsers.add_parser("list", help="List locally stored clips and continuations.")

    download = subparsers.add_parser("download", help="Download an asset variant for a clip.")
    download.add_argument("--id", dest="local_id", required=True, help="Local identifier of the clip.")
    download.add_argument(
        "--variant",
        choices=[variant.value for variant in VideoVariant],
        required=True,
        help="Asset variant to download.",
    )
    download.add_argument("--output", type=Path, required=True, help="Output path for the asset.")

    stitch = subparsers.add_parser("stitch", help="Concatenate local clips into a single MP4.")
    stitch.add_argument("--id", dest="local_id", required=True, help="Local identifier for the stitched output.")
    stitch.add_argument("clips", nargs="+", help="Clip identifiers to concatenate, in order.")

    return parser


def _config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "provider": args.provider,
        "api_key": args.api_key,
        "model": args.model,
        "size": args.size,
        "seconds": args.seconds,
        "data_dir": args.data_dir,
        "poll_interval_ms": args.poll_interval_ms,
        "gcp_project": args.gcp_project,
        "gcp_location": args.gcp_location,
        "gcp_access_token": args.gcp_access_token,
        "gcp_storage_uri": args.gcp_storage_uri,
        "gcp_generate_audio": args.gcp_generate_audio,
        "gcp_resolution": args.gcp_resolution,
        "gcp_enhance_prompt": args.gcp_enhance_prompt,
        "log_level": args.log_level,
    }


def resolve_config(args: argparse.Namespace) -> ContinuatorConfig:
    """Merge the optional config file with command line overrides."""
    if args.config is not None:
        base = load_config(args.config, provider=args.provider)
    else:
        base = load_config(DEFAULT_CONFIG_PATH, required=False, provider=args.provider)
    return base.merged(_config_overrides(args))


def format_metadata(metadata: ClipMetadata) -> str:
    lines: List[str] = [
        f"id: {metadata.local_id}",
        f"remote_id: {metadata.remote_id}",
        f"backend: {metadata.backend_kind.value}",
        f"model: {metadata.model}",
        f"seconds: {metadata.seconds}",
        f"size: {metadata.size}",
    ]
    if metadata.parent:
        lines.append(f"parent: {metadata.parent}")
    if metadata.created_at is not None:
        lines.append(f"created_at: {metadata.created_at}")
    lines.append(f"file: {metadata.file_path}")
    lines.append(f"prompt: {metadata.prompt}")
    return "\n".join(lines) + "\n"


def run_command(manager: ClipManager, args: argparse.Namespace) -> None:
    if args.command == "create":
        metadata = manager.create(
            CreateClipRequest(
                prompt=args.prompt,
                local_id=args.local_id,
                model=args.clip_model,
                size=args.clip_size,
                seconds=args.clip_seconds,
            )
        )
        print(format_metadata(metadata))
    elif args.command == "continue":
        metadata = manager.continue_clip(
            ContinueClipRequest(
                parent_local_id=args.parent_id,
                local_id=args.local_id,
                prompt=args.prompt,
                model=args.clip_model,
                size=args.clip_size,
                seconds=args.clip_seconds,
            )
        )
        print(format_metadata(metadata))
    elif args.command == "list":
        clips = manager.list_clips()
        if not clips:
            print("(no clips recorded)")
        for clip in clips:
            print(format_metadata(clip))
    elif args.command == "download":
        path = manager.download_asset(args.local_id, VideoVariant(args.variant), args.output)
        logger.info("Downloaded asset: %s", path)
    elif args.command == "stitch":
        path = manager.stitch(args.local_id, args.clips)
        print(f"stitched {args.local_id} -> {path}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = resolve_config(args)
    except (FileNotFoundError, InvalidConfigError) as exc:
        parser.error(str(exc))

    configure_logging(config.logging_level, config.log_file)

    try:
        manager = ClipManager.from_config(config)
        run_command(manager, args)
    except ContinuatorError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

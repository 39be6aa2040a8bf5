"""Configuration loader for the clip pipeline."""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

try:
    import yaml  # type: ignore
except ModuleNotFoundError as exc:  # pragma: no cover - import guard
    raise RuntimeError(
        "PyYAML is required. Please install it with `pip install pyyaml`."
    ) from exc

from clip_errors import InvalidConfigError
from clip_models import ProviderKind

DEFAULT_PROVIDER = ProviderKind.SORA
DEFAULT_DATA_DIR = "videos"
DEFAULT_POLL_INTERVAL_MS = 5_000
DEFAULT_SIZE = "1280x720"
DEFAULT_SORA_MODEL = "sora-2"
DEFAULT_SORA_SECONDS = 12
DEFAULT_VEO_MODEL = "veo-3.0-generate-preview"
DEFAULT_VEO_SECONDS = 8
DEFAULT_FFMPEG_PATH = "ffmpeg"
DEFAULT_TIMEOUT_CONNECT = 10.0
DEFAULT_TIMEOUT_READ = 120.0

_SECRET_FIELDS = {"api_key", "gcp_access_token"}
_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


@dataclass
class ContinuatorConfig:
    """Explicit configuration value handed to the clip manager.

    Every field is optional; unset values fall back to the module defaults
    when the manager and backend are built.
    """

    provider: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    size: Optional[str] = None
    seconds: Optional[int] = None
    data_dir: Optional[Path] = None
    poll_interval_ms: Optional[int] = None
    gcp_project: Optional[str] = None
    gcp_location: Optional[str] = None
    gcp_access_token: Optional[str] = None
    gcp_storage_uri: Optional[str] = None
    gcp_generate_audio: Optional[bool] = None
    gcp_resolution: Optional[str] = None
    gcp_enhance_prompt: Optional[bool] = None
    ffmpeg_path: Optional[str] = None
    temp_dir: Optional[Path] = None
    timeout_connect: Optional[float] = None
    timeout_read: Optional[float] = None
    log_level: Optional[str] = None
    log_file: Optional[Path] = None

    @property
    def provider_kind(self) -> ProviderKind:
        if not self.provider:
            return DEFAULT_PROVIDER
        try:
            return ProviderKind(str(self.provider).strip().lower())
        except ValueError as exc:
            supported = sorted(kind.value for kind in ProviderKind)
            raise InvalidConfigError(
                f"Unsupported provider '{self.provider}'. Supported providers: {supported}"
            ) from exc

    @property
    def resolved_data_dir(self) -> Path:
        return Path(self.data_dir) if self.data_dir else Path(DEFAULT_DATA_DIR)

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        interval_ms = DEFAULT_POLL_INTERVAL_MS if self.poll_interval_ms is None else self.poll_interval_ms
        if interval_ms < 0:
            raise InvalidConfigError(f"poll interval must not be negative (got {interval_ms} ms)")
        return interval_ms / 1000.0

    @property
    def timeouts(self) -> tuple[float, float]:
        connect = DEFAULT_TIMEOUT_CONNECT if self.timeout_connect is None else float(self.timeout_connect)
        read = DEFAULT_TIMEOUT_READ if self.timeout_read is None else float(self.timeout_read)
        return connect, read

    @property
    def logging_level(self) -> str:
        return str(self.log_level or "INFO").upper()

    def merged(self, overrides: Mapping[str, Any]) -> "ContinuatorConfig":
        """Return a copy where every non-None override replaces the current value."""
        known = {item.name for item in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise InvalidConfigError(f"Unknown configuration keys: {unknown}")
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    def to_debug_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            if item.name in _SECRET_FIELDS:
                value = "***"
            elif isinstance(value, Path):
                value = str(value)
            payload[item.name] = value
        return payload

    def dumps(self) -> str:
        """Return a JSON string for diagnostics."""
        return json.dumps(self.to_debug_dict(), ensure_ascii=False, indent=2)


def load_config(
    path: Path | str,
    *,
    required: bool = True,
    provider: Optional[str] = None,
) -> ContinuatorConfig:
    """Load a YAML config file.

    ``provider`` selects which ``apis.<provider>`` section supplies the model,
    size and duration defaults when the caller overrides the file's provider.
    """
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        if required:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return ContinuatorConfig(provider=provider)

    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise InvalidConfigError(f"Config file must contain a mapping: {config_path}")

    config = config_from_mapping(raw, base_dir=config_path.parent, provider=provider)
    return config


def config_from_mapping(
    raw: Mapping[str, Any],
    *,
    base_dir: Optional[Path] = None,
    provider: Optional[str] = None,
) -> ContinuatorConfig:
    """Translate the nested YAML layout into a flat ``ContinuatorConfig``."""
    provider_name = provider or raw.get("provider")
    provider_name = str(provider_name).strip().lower() if provider_name else None

    apis = _section(raw, "apis")
    sora_cfg = _section(apis, "sora")
    veo_cfg = _section(apis, "veo")
    active_cfg = veo_cfg if provider_name == ProviderKind.VEO.value else sora_cfg

    output_cfg = _section(raw, "output")
    logging_cfg = _section(raw, "logging")
    ffmpeg_cfg = _section(raw, "ffmpeg")

    return ContinuatorConfig(
        provider=provider_name,
        api_key=_optional_str(sora_cfg.get("api_key")),
        model=_optional_str(active_cfg.get("model")),
        size=_optional_str(active_cfg.get("size")),
        seconds=_optional_int(active_cfg.get("seconds"), "seconds"),
        data_dir=_resolve_path(base_dir, output_cfg.get("directory")),
        poll_interval_ms=_optional_int(raw.get("poll_interval_ms"), "poll_interval_ms"),
        gcp_project=_optional_str(veo_cfg.get("project")),
        gcp_location=_optional_str(veo_cfg.get("location")),
        gcp_access_token=_optional_str(veo_cfg.get("access_token")),
        gcp_storage_uri=_optional_str(veo_cfg.get("storage_uri")),
        gcp_generate_audio=_optional_bool(veo_cfg.get("generate_audio"), "generate_audio"),
        gcp_resolution=_optional_str(veo_cfg.get("resolution")),
        gcp_enhance_prompt=_optional_bool(veo_cfg.get("enhance_prompt"), "enhance_prompt"),
        ffmpeg_path=_optional_str(ffmpeg_cfg.get("path")),
        temp_dir=_resolve_path(base_dir, ffmpeg_cfg.get("temp_dir")),
        timeout_connect=_optional_float(active_cfg.get("timeout_connect"), "timeout_connect"),
        timeout_read=_optional_float(active_cfg.get("timeout_read"), "timeout_read"),
        log_level=_optional_str(logging_cfg.get("level") or logging_cfg.get("LEVEL")),
        log_file=_resolve_path(base_dir, logging_cfg.get("file")),
    )


def parse_bool(value: str) -> bool:
    """Parse a CLI boolean flag value such as ``true`` or ``off``."""
    parsed = _optional_bool(value, "flag")
    if parsed is None:
        raise InvalidConfigError(f"Expected a boolean value, got {value!r}")
    return parsed


# ----------------------------------------------------------------------
# Internal helpers
# ----------------------------------------------------------------------

def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key) if isinstance(raw, Mapping) else None
    return value if isinstance(value, Mapping) else {}


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(value: Any, name: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigError(f"{name} must be an integer (got {value!r})") from exc


def _optional_float(value: Any, name: str) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigError(f"{name} must be a number (got {value!r})") from exc


def _optional_bool(value: Any, name: str) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return None
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise InvalidConfigError(f"{name} must be a boolean (got {value!r})")


def _resolve_path(base_dir: Optional[Path], value: Any) -> Optional[Path]:
    text = _optional_str(value)
    if text is None:
        return None
    path = Path(text).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path.resolve()

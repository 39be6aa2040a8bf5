"""Factory helpers for selecting the render backend."""
from __future__ import annotations

import logging
import os

from clip_errors import MissingCredentialError
from clip_models import ProviderKind
from config_loader import (
    DEFAULT_SIZE,
    DEFAULT_SORA_MODEL,
    DEFAULT_SORA_SECONDS,
    DEFAULT_VEO_MODEL,
    DEFAULT_VEO_SECONDS,
    ContinuatorConfig,
)
from render_backends import BackendDefaults, RenderBackend, SoraBackend, VeoBackend
from sora_client import SoraClient
from veo_client import GcloudTokenSource, StaticTokenSource, VeoClient

logger = logging.getLogger(__name__)


def _make_sora_backend(config: ContinuatorConfig) -> SoraBackend:
    api_key = (config.api_key or os.getenv("OPENAI_API_KEY", "")).strip()
    if not api_key:
        raise MissingCredentialError("missing OPENAI_API_KEY environment variable")

    connect, read = config.timeouts
    client = SoraClient(api_key, timeout_connect=connect, timeout_read=read)
    defaults = BackendDefaults(
        model=config.model or DEFAULT_SORA_MODEL,
        size=config.size or DEFAULT_SIZE,
        seconds=config.seconds if config.seconds is not None else DEFAULT_SORA_SECONDS,
    )
    return SoraBackend(client, defaults)


def _make_veo_backend(config: ContinuatorConfig) -> VeoBackend:
    if config.gcp_access_token:
        token_source = StaticTokenSource(config.gcp_access_token)
    else:
        logger.debug("No Veo access token configured; using gcloud auth print-access-token")
        token_source = GcloudTokenSource()

    connect, read = config.timeouts
    client = VeoClient(
        config.gcp_project or "",
        config.gcp_location or "",
        token_source,
        timeout_connect=connect,
        timeout_read=read,
    )
    defaults = BackendDefaults(
        model=config.model or DEFAULT_VEO_MODEL,
        size=config.size or DEFAULT_SIZE,
        seconds=config.seconds if config.seconds is not None else DEFAULT_VEO_SECONDS,
    )
    return VeoBackend(
        client,
        defaults,
        generate_audio=True if config.gcp_generate_audio is None else config.gcp_generate_audio,
        enhance_prompt=True if config.gcp_enhance_prompt is None else config.gcp_enhance_prompt,
        storage_uri=config.gcp_storage_uri,
        resolution=config.gcp_resolution,
    )


def make_backend(config: ContinuatorConfig) -> RenderBackend:
    """Return the render backend selected by ``config.provider``."""

    provider = config.provider_kind
    if provider is ProviderKind.VEO:
        logger.debug("Using Veo backend for rendering")
        return _make_veo_backend(config)

    logger.debug("Using Sora backend for rendering")
    return _make_sora_backend(config)

from __future__ import annotations

from typing import Mapping, Optional
import logging

from studyforge.config.settings import AppSettings, resolve_env_secret

from .base import CompletionService
from .client import CompletionClient
from .config import build_provider_config
from .openai_adapter import OpenAISdkClient
from .transport import ChatTransport


def build_completion_client(
    settings: AppSettings,
    *,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[ChatTransport] = None,
    logger: logging.Logger | None = None,
) -> CompletionService:
    provider = settings.provider
    api_key = resolve_env_secret(provider.api_key_env, environ)
    config = build_provider_config(
        api_key,
        provider=provider.name,
        model=provider.model,
        base_url=provider.base_url,
    )

    if provider.backend == "sdk":
        return OpenAISdkClient(config, timeout_seconds=provider.timeout_seconds, logger=logger)
    return CompletionClient(
        config,
        transport=transport,
        timeout_seconds=provider.timeout_seconds,
        logger=logger,
    )

"""Startup wiring: one shared completion client for every consumer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import logging

from studyforge.config.settings import AppSettings
from studyforge.documents.processor import DocumentProcessor
from studyforge.llm.base import CompletionService
from studyforge.llm.factory import build_completion_client
from studyforge.llm.transport import ChatTransport


@dataclass(frozen=True)
class StudyServices:
    client: CompletionService
    documents: DocumentProcessor


def configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_services(
    settings: AppSettings,
    *,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[ChatTransport] = None,
    logger: Optional[logging.Logger] = None,
) -> StudyServices:
    """Build the client once; callers receive it by reference."""

    _logger = logger or logging.getLogger("studyforge.runtime")

    client = build_completion_client(settings, environ=environ, transport=transport)
    documents = DocumentProcessor(
        client,
        chunk_size=settings.documents.chunk_size,
        merge_threshold=settings.documents.merge_threshold,
        max_concurrency=settings.documents.max_concurrency,
        temperature=settings.provider.temperature,
        max_tokens=settings.provider.max_tokens,
    )
    _logger.info(
        "services_ready backend=%s chunk_size=%s max_concurrency=%s",
        settings.provider.backend,
        settings.documents.chunk_size,
        settings.documents.max_concurrency,
    )
    return StudyServices(client=client, documents=documents)

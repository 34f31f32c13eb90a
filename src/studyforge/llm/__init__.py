"""Completion client, provider configuration, and error taxonomy."""

from studyforge.llm.client import CompletionClient, EMPTY_PROMPT_REPLY

from .base import CompletionService
from .config import PROVIDER_FAMILIES, build_provider_config, infer_provider, validate_api_key
from .errors import (
    CompletionError,
    DocumentProcessingError,
    FailureKind,
    InvalidCredentialError,
    LLMError,
    UnsupportedProviderError,
)
from .factory import build_completion_client
from .openai_adapter import OpenAISdkClient
from .output import Flashcard, parse_flashcards, parse_json_output
from .transport import ChatTransport, HttpChatTransport
from .types import CompletionChunk, CompletionRequest, CompletionResult, ProviderConfig

__all__ = [
    "EMPTY_PROMPT_REPLY",
    "PROVIDER_FAMILIES",
    "ChatTransport",
    "CompletionChunk",
    "CompletionClient",
    "CompletionError",
    "CompletionRequest",
    "CompletionResult",
    "CompletionService",
    "DocumentProcessingError",
    "FailureKind",
    "Flashcard",
    "HttpChatTransport",
    "InvalidCredentialError",
    "LLMError",
    "OpenAISdkClient",
    "ProviderConfig",
    "UnsupportedProviderError",
    "build_completion_client",
    "build_provider_config",
    "infer_provider",
    "parse_flashcards",
    "parse_json_output",
    "validate_api_key",
]

from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed"
    NETWORK = "network"
    UNKNOWN = "unknown"


class LLMError(Exception):
    """Base error for provider failures. Always carries a failure kind."""

    default_kind = FailureKind.UNKNOWN

    def __init__(self, message: str, *, kind: Optional[FailureKind] = None) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind


class InvalidCredentialError(LLMError):
    """Raised at construction time when an API key has an unrecognized shape."""

    default_kind = FailureKind.UNAUTHORIZED


class UnsupportedProviderError(LLMError):
    """Raised when a provider family is not supported."""


class CompletionError(LLMError):
    """Raised for request/response failures of a single completion call."""

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.status_code = status_code


class DocumentProcessingError(LLMError):
    """Raised when one chunk of a document fails; the whole document fails."""

    def __init__(self, message: str, *, kind: FailureKind, chunk_index: int) -> None:
        super().__init__(message, kind=kind)
        self.chunk_index = chunk_index


def classify_http_status(status_code: int) -> FailureKind:
    if status_code in (401, 403):
        return FailureKind.UNAUTHORIZED
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    return FailureKind.UNKNOWN

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional
import re

from .errors import InvalidCredentialError

API_KEY_PATTERN = re.compile(r"^(sk-|ds-)[\w-]{10,}$")


@dataclass(frozen=True)
class ProviderConfig:
    provider: str
    base_url: str
    model: str
    api_key: str = field(repr=False)

    def __post_init__(self) -> None:
        if not API_KEY_PATTERN.fullmatch(self.api_key):
            raise InvalidCredentialError("Invalid API key format.")

        base_url = self.base_url.strip().rstrip("/")
        if not base_url:
            raise ValueError("base_url cannot be empty.")

        model = self.model.strip()
        if not model:
            raise ValueError("model cannot be empty.")

        object.__setattr__(self, "base_url", base_url)
        object.__setattr__(self, "model", model)

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"


@dataclass(frozen=True)
class CompletionRequest:
    prompt: str
    temperature: float = 0.7
    max_tokens: int = 1000
    stream: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_tokens, bool) or self.max_tokens <= 0:
            raise ValueError("max_tokens must be a positive integer.")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0.")


@dataclass(frozen=True)
class CompletionResult:
    text: str
    model: str
    finish_reason: Optional[str] = None
    chunk_count: int = 0


@dataclass(frozen=True)
class CompletionChunk:
    index: int
    delta_text: str


ChunkCallback = Callable[[str], None]

from __future__ import annotations

from typing import Any, AsyncIterator, Callable
import asyncio
import logging

import openai

from .client import DEFAULT_TIMEOUT_SECONDS, EMPTY_PROMPT_REPLY
from .errors import CompletionError, FailureKind, LLMError, classify_http_status
from .sse import iter_stream_chunks
from .types import ChunkCallback, CompletionRequest, CompletionResult, ProviderConfig


class OpenAISdkClient:
    """
    Completion service backed by the ``openai`` SDK.

    Works against any OpenAI-compatible base URL (OpenAI, DeepSeek). SDK
    retries are disabled; SDK exceptions are mapped onto ``FailureKind``.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        client: Any | None = None,
        client_factory: Callable[..., Any] | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._client_factory = client_factory or self._default_client_factory
        self._timeout_seconds = timeout_seconds
        self._logger = logger or logging.getLogger("studyforge.llm.openai_adapter")

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        if not request.prompt.strip():
            return CompletionResult(text=EMPTY_PROMPT_REPLY, model=self._config.model)

        response = await self._call(self._create(request, stream=False))
        choice = response.choices[0] if response.choices else None
        message = choice.message if choice else None
        text = message.content if message else None
        if not isinstance(text, str):
            raise CompletionError(
                "Response message content is not a string.", kind=FailureKind.MALFORMED
            )

        return CompletionResult(
            text=text,
            model=getattr(response, "model", None) or self._config.model,
            finish_reason=getattr(choice, "finish_reason", None),
        )

    async def complete_streaming(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
    ) -> CompletionResult:
        return await self._call(self._stream(request, on_chunk))

    async def _stream(self, request: CompletionRequest, on_chunk: ChunkCallback) -> CompletionResult:
        # The raw body goes through the same frame parser as the HTTP client so
        # malformed frames are skipped instead of failing the SDK's decoder.
        client = self._client or self._build_client()
        parts: list[str] = []
        async with client.chat.completions.with_streaming_response.create(
            **self._arguments(request, stream=True)
        ) as response:
            async for chunk in iter_stream_chunks(_read_body(response), logger=self._logger):
                parts.append(chunk.delta_text)
                on_chunk(chunk.delta_text)

        return CompletionResult(
            text="".join(parts),
            model=self._config.model,
            chunk_count=len(parts),
        )

    def _create(self, request: CompletionRequest, *, stream: bool) -> Any:
        client = self._client or self._build_client()
        return client.chat.completions.create(**self._arguments(request, stream=stream))

    def _arguments(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        return {
            "model": self._config.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": stream,
        }

    async def _call(self, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            error = CompletionError(
                "Request timed out. Please try again.", kind=FailureKind.TIMEOUT
            )
            self._logger.warning("llm_completion_failed kind=%s", error.kind.value)
            raise error from exc
        except LLMError as exc:
            self._logger.warning("llm_completion_failed kind=%s", exc.kind.value)
            raise
        except openai.OpenAIError as exc:
            error = classify_sdk_error(exc)
            self._logger.warning("llm_completion_failed kind=%s", error.kind.value)
            raise error from exc

    def _build_client(self) -> Any:
        self._client = self._client_factory(
            api_key=self._config.api_key,
            base_url=self._config.base_url,
            timeout=self._timeout_seconds,
            max_retries=0,
        )
        return self._client

    @staticmethod
    def _default_client_factory(**kwargs: Any) -> Any:
        return openai.AsyncOpenAI(**kwargs)


def classify_sdk_error(exc: openai.OpenAIError) -> CompletionError:
    if isinstance(exc, openai.APITimeoutError):
        return CompletionError("Request timed out. Please try again.", kind=FailureKind.TIMEOUT)
    if isinstance(exc, openai.APIConnectionError):
        return CompletionError(
            "Failed to connect to API. Please try again.", kind=FailureKind.NETWORK
        )
    if isinstance(exc, openai.APIStatusError):
        return CompletionError(
            f"HTTP error {exc.status_code}: {exc.message}",
            kind=classify_http_status(exc.status_code),
            status_code=exc.status_code,
        )
    if isinstance(exc, openai.APIResponseValidationError):
        return CompletionError(str(exc), kind=FailureKind.MALFORMED)
    return CompletionError(str(exc), kind=FailureKind.UNKNOWN)


async def _read_body(response: Any) -> AsyncIterator[bytes]:
    try:
        async for block in response.iter_bytes():
            yield block
    except openai.OpenAIError:
        raise
    except Exception as exc:
        raise CompletionError(
            "Stream read failed. Please try again.", kind=FailureKind.NETWORK
        ) from exc

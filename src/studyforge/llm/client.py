"""Completion client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Mapping, Optional, Sequence, TypeVar
import asyncio
import logging

from .errors import CompletionError, FailureKind, LLMError
from .sse import iter_stream_chunks
from .transport import ChatTransport, HttpChatTransport
from .types import ChunkCallback, CompletionRequest, CompletionResult, ProviderConfig

DEFAULT_TIMEOUT_SECONDS = 30.0
EMPTY_PROMPT_REPLY = "No content to analyze. Please provide input."

_T = TypeVar("_T")


class CompletionClient:
    """Buffered and streaming completions against one configured provider.

    Holds no state besides its configuration, so a single instance can be
    shared by every caller. Failures are raised as ``LLMError`` subclasses
    with a ``FailureKind``; nothing is retried here.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        transport: Optional[ChatTransport] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0.")
        self._config = config
        self._transport = transport or HttpChatTransport()
        self._timeout_seconds = timeout_seconds
        self._logger = logger or logging.getLogger("studyforge.llm.client")

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        if not request.prompt.strip():
            return CompletionResult(text=EMPTY_PROMPT_REPLY, model=self._config.model)

        raw = await self._with_timeout(self._send(request))
        try:
            result = _parse_chat_response(raw, default_model=self._config.model)
        except CompletionError as exc:
            self._log_failure(exc, streaming=False)
            raise

        self._logger.info(
            "llm_completion_success provider=%s model=%s chars=%s",
            self._config.provider,
            result.model,
            len(result.text),
        )
        return result

    async def complete_streaming(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
    ) -> CompletionResult:
        result = await self._with_timeout(self._stream(request, on_chunk), streaming=True)
        self._logger.info(
            "llm_completion_success provider=%s model=%s chars=%s chunks=%s",
            self._config.provider,
            result.model,
            len(result.text),
            result.chunk_count,
        )
        return result

    async def _stream(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
    ) -> CompletionResult:
        blocks = self._transport.stream(
            url=self._config.completions_url,
            headers=self._headers(),
            payload=self._payload(request, stream=True),
            timeout_seconds=self._timeout_seconds,
        )
        guarded = _guard_transport(blocks)
        parts: list[str] = []
        try:
            async for chunk in iter_stream_chunks(guarded, logger=self._logger):
                parts.append(chunk.delta_text)
                on_chunk(chunk.delta_text)
        finally:
            await guarded.aclose()
            aclose = getattr(blocks, "aclose", None)
            if aclose is not None:
                await aclose()

        return CompletionResult(
            text="".join(parts),
            model=self._config.model,
            chunk_count=len(parts),
        )

    async def _with_timeout(self, awaitable: Awaitable[_T], *, streaming: bool = False) -> _T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            error = CompletionError(
                "Request timed out. Please try again.", kind=FailureKind.TIMEOUT
            )
            self._log_failure(error, streaming=streaming)
            raise error from exc
        except LLMError as exc:
            self._log_failure(exc, streaming=streaming)
            raise

    async def _send(self, request: CompletionRequest) -> Mapping[str, Any]:
        try:
            return await self._transport.send(
                url=self._config.completions_url,
                headers=self._headers(),
                payload=self._payload(request, stream=False),
                timeout_seconds=self._timeout_seconds,
            )
        except OSError as exc:
            raise _network_error() from exc

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }

    def _payload(self, request: CompletionRequest, *, stream: bool) -> dict[str, Any]:
        return {
            "model": self._config.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": stream,
        }

    def _log_failure(self, exc: LLMError, *, streaming: bool) -> None:
        self._logger.warning(
            "llm_completion_failed provider=%s model=%s kind=%s streaming=%s",
            self._config.provider,
            self._config.model,
            exc.kind.value,
            streaming,
        )


async def _guard_transport(blocks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    # Only transport reads are relabelled; errors raised by on_chunk pass through.
    try:
        async for block in blocks:
            yield block
    except OSError as exc:
        raise _network_error() from exc


def _network_error() -> CompletionError:
    return CompletionError(
        "Failed to connect to API. Please try again.", kind=FailureKind.NETWORK
    )


def _parse_chat_response(payload: Mapping[str, Any], *, default_model: str) -> CompletionResult:
    choices = payload.get("choices")
    if not isinstance(choices, Sequence) or isinstance(choices, str) or not choices:
        raise CompletionError("Response missing choices array.", kind=FailureKind.MALFORMED)

    choice = choices[0]
    if not isinstance(choice, Mapping):
        raise CompletionError("Response choice is not an object.", kind=FailureKind.MALFORMED)

    message = choice.get("message")
    if not isinstance(message, Mapping):
        raise CompletionError(
            "Response choice missing message object.", kind=FailureKind.MALFORMED
        )

    text = message.get("content")
    if not isinstance(text, str):
        raise CompletionError(
            "Response message content is not a string.", kind=FailureKind.MALFORMED
        )

    model = payload.get("model")
    if not isinstance(model, str) or not model.strip():
        model = default_model

    finish_reason = choice.get("finish_reason")
    if not isinstance(finish_reason, str):
        finish_reason = None

    return CompletionResult(text=text, model=model, finish_reason=finish_reason)

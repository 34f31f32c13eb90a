"""HTTP transport for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

from typing import Any, AsyncIterator, Mapping, Optional, Protocol
import asyncio
import json
import socket
import urllib.error
import urllib.request

from .errors import CompletionError, FailureKind, classify_http_status

_READ_SIZE = 4096


class ChatTransport(Protocol):
    async def send(
        self,
        *,
        url: str,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
        timeout_seconds: float,
    ) -> Mapping[str, Any]:
        ...

    def stream(
        self,
        *,
        url: str,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
        timeout_seconds: float,
    ) -> AsyncIterator[bytes]:
        ...


class HttpChatTransport:
    """urllib-based transport; blocking calls run in worker threads."""

    async def send(
        self,
        *,
        url: str,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
        timeout_seconds: float,
    ) -> Mapping[str, Any]:
        request = _build_request(url, headers, payload)

        def _do_request() -> Mapping[str, Any]:
            with _open(request, timeout_seconds) as response:
                try:
                    raw = response.read().decode("utf-8", errors="replace")
                except (socket.timeout, TimeoutError) as exc:
                    raise CompletionError(
                        "Request timed out. Please try again.", kind=FailureKind.TIMEOUT
                    ) from exc
                except OSError as exc:
                    raise CompletionError(
                        "Connection lost while reading the response.",
                        kind=FailureKind.NETWORK,
                    ) from exc

            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise CompletionError(
                    "Provider response was not valid JSON.", kind=FailureKind.MALFORMED
                ) from exc

            if not isinstance(parsed, Mapping):
                raise CompletionError(
                    "Provider response has invalid structure.", kind=FailureKind.MALFORMED
                )
            return parsed

        return await asyncio.to_thread(_do_request)

    async def stream(
        self,
        *,
        url: str,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
        timeout_seconds: float,
    ) -> AsyncIterator[bytes]:
        request = _build_request(url, headers, payload)
        response = await asyncio.to_thread(_open, request, timeout_seconds)
        read = getattr(response, "read1", response.read)
        try:
            while True:
                try:
                    block = await asyncio.to_thread(read, _READ_SIZE)
                except (socket.timeout, TimeoutError) as exc:
                    raise CompletionError(
                        "Request timed out. Please try again.", kind=FailureKind.TIMEOUT
                    ) from exc
                except OSError as exc:
                    raise CompletionError(
                        "Connection lost while streaming the response.",
                        kind=FailureKind.NETWORK,
                    ) from exc
                if not block:
                    break
                yield block
        finally:
            response.close()


def _build_request(
    url: str,
    headers: Mapping[str, str],
    payload: Mapping[str, Any],
) -> urllib.request.Request:
    return urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers=dict(headers),
    )


def _open(request: urllib.request.Request, timeout_seconds: float) -> Any:
    try:
        return urllib.request.urlopen(request, timeout=timeout_seconds)
    except urllib.error.HTTPError as exc:
        message = _provider_error_message(exc) or exc.reason or "Unknown error"
        raise CompletionError(
            f"HTTP error {exc.code}: {message}",
            kind=classify_http_status(exc.code),
            status_code=exc.code,
        ) from exc
    except urllib.error.URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise CompletionError(
                "Request timed out. Please try again.", kind=FailureKind.TIMEOUT
            ) from exc
        raise CompletionError(
            "Failed to connect to API. Please try again.", kind=FailureKind.NETWORK
        ) from exc
    except (socket.timeout, TimeoutError) as exc:
        raise CompletionError(
            "Request timed out. Please try again.", kind=FailureKind.TIMEOUT
        ) from exc
    except OSError as exc:
        raise CompletionError(
            "Failed to connect to API. Please try again.", kind=FailureKind.NETWORK
        ) from exc


def _provider_error_message(exc: urllib.error.HTTPError) -> Optional[str]:
    try:
        body = json.loads(exc.read().decode("utf-8", errors="replace"))
    except (OSError, ValueError):
        return None

    if not isinstance(body, Mapping):
        return None
    error = body.get("error")
    if isinstance(error, Mapping) and isinstance(error.get("message"), str):
        return error["message"]
    return None

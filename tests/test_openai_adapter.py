from __future__ import annotations

import asyncio
import unittest
from types import SimpleNamespace

import httpx
import openai

from _fakes import AdvancingClock, sse_frame

from studyforge.llm import (
    CompletionError,
    CompletionRequest,
    FailureKind,
    OpenAISdkClient,
    build_provider_config,
)

_REQUEST = httpx.Request("POST", "https://api.deepseek.com/v1/chat/completions")


def _response(text):
    return SimpleNamespace(
        model="deepseek-chat",
        choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")],
    )


class _FakeStreamingResponse:
    def __init__(self, blocks, *, hang=False, error=None):
        self._blocks = list(blocks)
        self._hang = hang
        self._error = error
        self.closed = False

    async def __aenter__(self):
        if self._error is not None:
            raise self._error
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    async def iter_bytes(self):
        for block in self._blocks:
            yield block
        if self._hang:
            await asyncio.Event().wait()


class _FakeStreamingCreate:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.response


class _FakeCompletions:
    def __init__(self, result=None, error=None, streaming=None):
        self.result = result
        self.error = error
        self.calls = []
        self.with_streaming_response = _FakeStreamingCreate(streaming)

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


class _FakeClient:
    def __init__(self, completions):
        self.chat = SimpleNamespace(completions=completions)


class OpenAISdkClientTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.config = build_provider_config("ds-sdk-key-0123456789")

    async def test_complete_maps_request_to_sdk_call(self):
        completions = _FakeCompletions(result=_response("Entropy increases."))
        client = OpenAISdkClient(self.config, client=_FakeClient(completions))

        result = await client.complete(CompletionRequest(prompt="Second law?", max_tokens=64))

        self.assertEqual(result.text, "Entropy increases.")
        self.assertEqual(result.finish_reason, "stop")
        call = completions.calls[0]
        self.assertEqual(call["model"], "deepseek-chat")
        self.assertEqual(call["messages"], [{"role": "user", "content": "Second law?"}])
        self.assertEqual(call["max_tokens"], 64)
        self.assertFalse(call["stream"])

    async def test_streaming_delivers_non_empty_deltas(self):
        blocks = [
            sse_frame("Ent"),
            b'data: {"choices": []}\n\n',
            sse_frame(None),
            sse_frame("ropy"),
            b"data: [DONE]\n\n",
        ]
        completions = _FakeCompletions(streaming=_FakeStreamingResponse(blocks))
        client = OpenAISdkClient(self.config, client=_FakeClient(completions))
        received = []

        result = await client.complete_streaming(CompletionRequest(prompt="p"), received.append)

        self.assertEqual(received, ["Ent", "ropy"])
        self.assertEqual(result.text, "Entropy")
        self.assertEqual(result.chunk_count, 2)
        self.assertTrue(completions.with_streaming_response.calls[0]["stream"])
        self.assertEqual(completions.calls, [])

    async def test_streaming_skips_malformed_frame(self):
        blocks = [sse_frame("one"), b"data: {not json}\n\n", sse_frame("two"), b"data: [DONE]\n\n"]
        response = _FakeStreamingResponse(blocks)
        client = OpenAISdkClient(
            self.config, client=_FakeClient(_FakeCompletions(streaming=response))
        )
        received = []

        result = await client.complete_streaming(CompletionRequest(prompt="p"), received.append)

        self.assertEqual(received, ["one", "two"])
        self.assertEqual(result.text, "onetwo")
        self.assertTrue(response.closed)

    async def test_streaming_open_failure_is_classified(self):
        error = openai.AuthenticationError(
            "bad key", response=httpx.Response(401, request=_REQUEST), body=None
        )
        response = _FakeStreamingResponse([], error=error)
        client = OpenAISdkClient(
            self.config, client=_FakeClient(_FakeCompletions(streaming=response))
        )
        received = []

        with self.assertRaises(CompletionError) as ctx:
            await client.complete_streaming(CompletionRequest(prompt="p"), received.append)

        self.assertEqual(ctx.exception.kind, FailureKind.UNAUTHORIZED)
        self.assertEqual(received, [])

    async def test_stream_is_closed_when_callback_fails(self):
        response = _FakeStreamingResponse([sse_frame("a"), sse_frame("b")])
        client = OpenAISdkClient(
            self.config, client=_FakeClient(_FakeCompletions(streaming=response))
        )

        def on_chunk(delta):
            raise RuntimeError("panel closed")

        with self.assertRaises(RuntimeError):
            await client.complete_streaming(CompletionRequest(prompt="p"), on_chunk)

        self.assertTrue(response.closed)

    async def test_stalled_stream_times_out_and_is_closed(self):
        response = _FakeStreamingResponse([sse_frame("partial")], hang=True)
        client = OpenAISdkClient(
            self.config,
            client=_FakeClient(_FakeCompletions(streaming=response)),
            timeout_seconds=30.0,
        )
        received = []

        with AdvancingClock():
            with self.assertRaises(CompletionError) as ctx:
                await client.complete_streaming(CompletionRequest(prompt="p"), received.append)

        self.assertEqual(ctx.exception.kind, FailureKind.TIMEOUT)
        self.assertEqual(received, ["partial"])
        self.assertTrue(response.closed)

    async def test_builds_sdk_client_without_retries(self):
        captured = {}
        completions = _FakeCompletions(result=_response("ok"))

        def factory(**kwargs):
            captured.update(kwargs)
            return _FakeClient(completions)

        client = OpenAISdkClient(self.config, client_factory=factory, timeout_seconds=5.0)
        await client.complete(CompletionRequest(prompt="p"))

        self.assertEqual(captured["api_key"], "ds-sdk-key-0123456789")
        self.assertEqual(captured["base_url"], "https://api.deepseek.com/v1")
        self.assertEqual(captured["max_retries"], 0)
        self.assertEqual(captured["timeout"], 5.0)

    async def test_sdk_errors_are_classified(self):
        cases = (
            (openai.APITimeoutError(request=_REQUEST), FailureKind.TIMEOUT),
            (openai.APIConnectionError(request=_REQUEST), FailureKind.NETWORK),
            (
                openai.AuthenticationError(
                    "bad key", response=httpx.Response(401, request=_REQUEST), body=None
                ),
                FailureKind.UNAUTHORIZED,
            ),
            (
                openai.RateLimitError(
                    "slow down", response=httpx.Response(429, request=_REQUEST), body=None
                ),
                FailureKind.RATE_LIMITED,
            ),
        )
        for error, kind in cases:
            with self.subTest(kind=kind):
                client = OpenAISdkClient(
                    self.config, client=_FakeClient(_FakeCompletions(error=error))
                )
                with self.assertRaises(CompletionError) as ctx:
                    await client.complete(CompletionRequest(prompt="p"))
                self.assertEqual(ctx.exception.kind, kind)

    async def test_missing_content_is_malformed(self):
        client = OpenAISdkClient(
            self.config, client=_FakeClient(_FakeCompletions(result=_response(None)))
        )

        with self.assertRaises(CompletionError) as ctx:
            await client.complete(CompletionRequest(prompt="p"))

        self.assertEqual(ctx.exception.kind, FailureKind.MALFORMED)


if __name__ == "__main__":
    unittest.main()

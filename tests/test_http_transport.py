from __future__ import annotations

import io
import json
import socket
import unittest
import urllib.error
from unittest.mock import patch

from studyforge.llm import CompletionError, FailureKind, HttpChatTransport

_URL = "https://api.openai.com/v1/chat/completions"
_HEADERS = {"Content-Type": "application/json", "Authorization": "Bearer sk-x"}


class _FakeResponse:
    def __init__(self, body=b"", blocks=()):
        self._body = body
        self._blocks = list(blocks)
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False

    def read(self, *args):
        return self._body

    def read1(self, size):
        return self._blocks.pop(0) if self._blocks else b""

    def close(self):
        self.closed = True


def _http_error(code, body=b""):
    return urllib.error.HTTPError(_URL, code, "error", hdrs=None, fp=io.BytesIO(body))


class HttpChatTransportTests(unittest.IsolatedAsyncioTestCase):
    async def _send(self, **urlopen_kwargs):
        with patch("urllib.request.urlopen", **urlopen_kwargs) as urlopen:
            result = await HttpChatTransport().send(
                url=_URL,
                headers=_HEADERS,
                payload={"model": "gpt-3.5-turbo"},
                timeout_seconds=3.0,
            )
        return result, urlopen

    async def test_send_posts_json_and_parses_body(self):
        body = json.dumps({"choices": []}).encode("utf-8")
        result, urlopen = await self._send(return_value=_FakeResponse(body=body))

        self.assertEqual(result, {"choices": []})
        request = urlopen.call_args.args[0]
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(request.full_url, _URL)
        self.assertEqual(json.loads(request.data), {"model": "gpt-3.5-turbo"})
        self.assertEqual(request.get_header("Authorization"), "Bearer sk-x")
        self.assertEqual(urlopen.call_args.kwargs["timeout"], 3.0)

    async def test_http_status_classification(self):
        cases = (
            (401, FailureKind.UNAUTHORIZED),
            (403, FailureKind.UNAUTHORIZED),
            (429, FailureKind.RATE_LIMITED),
            (500, FailureKind.UNKNOWN),
        )
        for code, kind in cases:
            with self.subTest(code=code):
                body = json.dumps({"error": {"message": "provider says no"}}).encode()
                with self.assertRaises(CompletionError) as ctx:
                    await self._send(side_effect=_http_error(code, body))
                self.assertEqual(ctx.exception.kind, kind)
                self.assertEqual(ctx.exception.status_code, code)
                self.assertIn("provider says no", str(ctx.exception))

    async def test_url_timeout_is_timeout(self):
        with self.assertRaises(CompletionError) as ctx:
            await self._send(side_effect=urllib.error.URLError(socket.timeout("timed out")))
        self.assertEqual(ctx.exception.kind, FailureKind.TIMEOUT)

    async def test_connection_failure_is_network(self):
        with self.assertRaises(CompletionError) as ctx:
            await self._send(side_effect=urllib.error.URLError("connection refused"))
        self.assertEqual(ctx.exception.kind, FailureKind.NETWORK)

    async def test_invalid_json_is_malformed(self):
        with self.assertRaises(CompletionError) as ctx:
            await self._send(return_value=_FakeResponse(body=b"<html>oops</html>"))
        self.assertEqual(ctx.exception.kind, FailureKind.MALFORMED)

    async def test_non_object_json_is_malformed(self):
        with self.assertRaises(CompletionError) as ctx:
            await self._send(return_value=_FakeResponse(body=b"[1, 2]"))
        self.assertEqual(ctx.exception.kind, FailureKind.MALFORMED)

    async def test_stream_yields_blocks_until_eof_and_closes(self):
        response = _FakeResponse(blocks=[b"data: a\n", b"data: b\n"])
        with patch("urllib.request.urlopen", return_value=response):
            blocks = [
                block
                async for block in HttpChatTransport().stream(
                    url=_URL, headers=_HEADERS, payload={}, timeout_seconds=3.0
                )
            ]

        self.assertEqual(blocks, [b"data: a\n", b"data: b\n"])
        self.assertTrue(response.closed)

    async def test_stream_open_failure_is_classified(self):
        with patch("urllib.request.urlopen", side_effect=_http_error(429)):
            with self.assertRaises(CompletionError) as ctx:
                async for _ in HttpChatTransport().stream(
                    url=_URL, headers=_HEADERS, payload={}, timeout_seconds=3.0
                ):
                    pass

        self.assertEqual(ctx.exception.kind, FailureKind.RATE_LIMITED)


if __name__ == "__main__":
    unittest.main()

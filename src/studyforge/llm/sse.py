"""Line framing and delta decoding for chat completion event streams."""

from __future__ import annotations

from typing import Any, AsyncIterable, AsyncIterator, Mapping, Optional, Sequence
import codecs
import json
import logging

from .types import CompletionChunk

DATA_PREFIX = "data: "
DONE_FRAME = "data: [DONE]"

_logger = logging.getLogger("studyforge.llm.sse")


class LineBuffer:
    """Incrementally decodes UTF-8 bytes and yields complete lines."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, data: bytes) -> list[str]:
        self._pending += self._decoder.decode(data)
        lines = self._pending.split("\n")
        self._pending = lines.pop()
        return [line.rstrip("\r") for line in lines]

    @property
    def pending(self) -> str:
        return self._pending


def decode_delta(payload: str) -> Optional[str]:
    """Return ``choices[0].delta.content`` from a frame payload.

    Raises ``ValueError`` when the payload is not JSON or lacks the
    expected shape.
    """

    parsed = json.loads(payload)
    if not isinstance(parsed, Mapping):
        raise ValueError("frame payload is not an object")

    choices = parsed.get("choices")
    if not isinstance(choices, Sequence) or isinstance(choices, str) or not choices:
        raise ValueError("frame payload missing choices array")

    choice = choices[0]
    if not isinstance(choice, Mapping):
        raise ValueError("frame choice is not an object")

    delta = choice.get("delta")
    if not isinstance(delta, Mapping):
        raise ValueError("frame choice missing delta object")

    content: Any = delta.get("content")
    if content is None:
        return None
    if not isinstance(content, str):
        raise ValueError("frame delta content is not a string")
    return content


async def iter_stream_chunks(
    blocks: AsyncIterable[bytes],
    *,
    logger: Optional[logging.Logger] = None,
) -> AsyncIterator[CompletionChunk]:
    """Turn raw transport blocks into ordered text deltas.

    Stops at the terminal frame. A partial line left when the transport
    closes is dropped.
    """

    log = logger or _logger
    buffer = LineBuffer()
    index = 0

    async for block in blocks:
        for line in buffer.feed(block):
            if line == DONE_FRAME:
                return
            if not line.startswith(DATA_PREFIX):
                continue

            try:
                content = decode_delta(line[len(DATA_PREFIX):])
            except ValueError as exc:
                log.debug("stream_frame_skipped reason=%s", exc)
                continue

            if content:
                yield CompletionChunk(index=index, delta_text=content)
                index += 1

    if buffer.pending:
        log.debug("stream_partial_line_discarded chars=%s", len(buffer.pending))

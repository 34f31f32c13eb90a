from __future__ import annotations

from typing import Protocol

from .types import ChunkCallback, CompletionRequest, CompletionResult


class CompletionService(Protocol):
    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Generate a full completion for the request."""
        ...

    async def complete_streaming(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
    ) -> CompletionResult:
        """Deliver deltas to ``on_chunk`` in order and return the full text."""
        ...

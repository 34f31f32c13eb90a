from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DocumentChunk:
    index: int
    text: str


def split_document(text: str, chunk_size: int) -> list[DocumentChunk]:
    """Partition ``text`` into consecutive chunks of at most ``chunk_size`` characters.

    Joining the chunk texts in index order reproduces ``text`` exactly.
    """

    if isinstance(chunk_size, bool) or chunk_size <= 0:
        raise ValueError("chunk_size must be a positive integer.")

    return [
        DocumentChunk(index=index, text=text[start : start + chunk_size])
        for index, start in enumerate(range(0, len(text), chunk_size))
    ]

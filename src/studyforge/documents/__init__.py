"""Chunked processing of oversized documents."""

from studyforge.documents.chunking import DocumentChunk, split_document
from studyforge.documents.processor import DocumentProcessor, QuizQuestion

__all__ = [
    "DocumentChunk",
    "DocumentProcessor",
    "QuizQuestion",
    "split_document",
]

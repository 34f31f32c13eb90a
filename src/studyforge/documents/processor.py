"""Drives completions over documents larger than a single request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence
import asyncio
import logging

from studyforge.llm.base import CompletionService
from studyforge.llm.errors import DocumentProcessingError, LLMError
from studyforge.llm.output import Flashcard, parse_flashcards, parse_json_output
from studyforge.llm.types import CompletionRequest

from .chunking import DocumentChunk, split_document

DEFAULT_CHUNK_SIZE = 4000
DEFAULT_MERGE_THRESHOLD = 4000

_SUMMARY_PROMPT = "Please provide a very concise summary of this text section:\n\n{text}"
_MERGE_SUMMARY_PROMPT = (
    "Please provide a final concise summary combining these section summaries:\n\n{text}"
)
_CONCEPTS_PROMPT = "Extract and briefly explain the key concepts from this text section:\n\n{text}"
_MERGE_CONCEPTS_PROMPT = (
    "Please combine and organize these key concepts, removing any duplicates:\n\n{text}"
)
_QUIZ_PROMPT = """Generate a quiz with 5 multiple choice questions based on this text. Format as JSON:
{{
  "questions": [
    {{
      "question": "Question text",
      "options": ["Option 1", "Option 2", "Option 3", "Option 4"],
      "correctAnswer": 0,
      "explanation": "Why this answer is correct"
    }}
  ]
}}

Text: {text}"""
_FLASHCARDS_PROMPT = """Create 5 flashcards based on this text section. Format each flashcard as follows:
Q: [Question]
A: [Concise Answer]

Make sure each question-answer pair is separated by a blank line. Here's the text:

{text}"""


@dataclass(frozen=True)
class QuizQuestion:
    question: str
    options: tuple[str, ...]
    correct_answer: int
    explanation: str = ""


class DocumentProcessor:
    """Splits documents, completes each chunk, and merges the results.

    A failure on any chunk cancels the remaining chunk calls and fails the
    whole document with ``DocumentProcessingError``.
    """

    def __init__(
        self,
        client: CompletionService,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        merge_threshold: int = DEFAULT_MERGE_THRESHOLD,
        max_concurrency: Optional[int] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0.")
        if merge_threshold <= 0:
            raise ValueError("merge_threshold must be > 0.")
        if max_concurrency is not None and max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0 when set.")

        self._client = client
        self._chunk_size = chunk_size
        self._merge_threshold = merge_threshold
        self._max_concurrency = max_concurrency
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._logger = logger or logging.getLogger("studyforge.documents.processor")

    def split(self, text: str) -> list[DocumentChunk]:
        return split_document(text, self._chunk_size)

    async def summarize_document(self, text: str) -> str:
        chunks = self.split(text)
        summaries = await self._map_chunks(chunks, _SUMMARY_PROMPT)
        combined = "".join(summaries)

        if len(combined) <= self._merge_threshold:
            self._logger.info(
                "document_summary_complete chunks=%s merged=false chars=%s",
                len(chunks),
                len(combined),
            )
            return combined

        merged = await self._complete(_MERGE_SUMMARY_PROMPT.format(text=combined))
        self._logger.info(
            "document_summary_complete chunks=%s merged=true chars=%s",
            len(chunks),
            len(merged),
        )
        return merged

    async def extract_key_concepts(self, text: str) -> str:
        chunks = self.split(text)
        concepts = await self._map_chunks(chunks, _CONCEPTS_PROMPT)
        return await self._complete(_MERGE_CONCEPTS_PROMPT.format(text="\n\n".join(concepts)))

    async def generate_quiz(self, text: str) -> list[QuizQuestion]:
        chunks = self.split(text)
        if not chunks:
            return []

        raw = await self._complete(_QUIZ_PROMPT.format(text=chunks[0].text))
        payload = parse_json_output(raw, {})
        questions = _parse_quiz_questions(payload.get("questions"))
        if not questions:
            self._logger.warning("quiz_parse_empty chars=%s", len(raw))
        return questions

    async def generate_flashcards(self, text: str) -> list[Flashcard]:
        chunks = self.split(text)
        if not chunks:
            return []

        raw = await self._complete(_FLASHCARDS_PROMPT.format(text=chunks[0].text))
        cards = parse_flashcards(raw)
        if not cards:
            self._logger.warning("flashcards_parse_empty chars=%s", len(raw))
        return cards

    async def _map_chunks(self, chunks: Sequence[DocumentChunk], template: str) -> list[str]:
        semaphore = (
            asyncio.Semaphore(self._max_concurrency) if self._max_concurrency is not None else None
        )

        async def _run(chunk: DocumentChunk) -> str:
            try:
                if semaphore is None:
                    return await self._complete(template.format(text=chunk.text))
                async with semaphore:
                    return await self._complete(template.format(text=chunk.text))
            except LLMError as exc:
                self._logger.warning(
                    "document_chunk_failed index=%s kind=%s",
                    chunk.index,
                    exc.kind.value,
                )
                raise DocumentProcessingError(
                    f"Chunk {chunk.index} failed: {exc}",
                    kind=exc.kind,
                    chunk_index=chunk.index,
                ) from exc

        tasks = [asyncio.create_task(_run(chunk)) for chunk in chunks]
        try:
            # gather keeps results aligned with chunk index regardless of finish order.
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _complete(self, prompt: str) -> str:
        result = await self._client.complete(
            CompletionRequest(
                prompt=prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        )
        return result.text


def _parse_quiz_questions(raw_questions: Any) -> list[QuizQuestion]:
    if not isinstance(raw_questions, list):
        return []

    questions: list[QuizQuestion] = []
    for item in raw_questions:
        if not isinstance(item, Mapping):
            continue
        question = item.get("question")
        options = item.get("options")
        correct = item.get("correctAnswer")
        explanation = item.get("explanation", "")
        if not isinstance(question, str) or not question.strip():
            continue
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            continue
        if isinstance(correct, bool) or not isinstance(correct, int):
            continue
        if not 0 <= correct < len(options):
            continue
        questions.append(
            QuizQuestion(
                question=question.strip(),
                options=tuple(options),
                correct_answer=correct,
                explanation=explanation if isinstance(explanation, str) else "",
            )
        )
    return questions

"""Parsing of loosely structured model output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, TypeVar
import json
import re

_T = TypeVar("_T")

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)


@dataclass(frozen=True)
class Flashcard:
    question: str
    answer: str


def strip_code_fence(text: str) -> str:
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def parse_json_output(
    text: Optional[str],
    default: _T,
    *,
    expected_type: type | tuple[type, ...] = dict,
) -> Any:
    """Parse model output as JSON, returning ``default`` on any mismatch.

    Models often wrap JSON in code fences or add a sentence before it, so
    the outermost object/array is located before parsing.
    """

    if not text:
        return default

    candidate = strip_code_fence(text)
    parsed = _loads(candidate)
    if parsed is None:
        parsed = _loads(_outermost_json(candidate))

    if parsed is None or not isinstance(parsed, expected_type):
        return default
    return parsed


def parse_flashcards(text: str) -> list[Flashcard]:
    """Parse ``Q: ...`` / ``A: ...`` blocks separated by blank lines."""

    cards: list[Flashcard] = []
    for block in re.split(r"\n\s*\n", text.replace("\r\n", "\n")):
        block = block.strip()
        if not block.startswith("Q:") or "\nA:" not in block:
            continue

        question, _, answer = block.partition("\nA:")
        question = question[len("Q:"):].strip()
        answer = answer.strip()
        if question and answer:
            cards.append(Flashcard(question=question, answer=answer))
    return cards


def _loads(candidate: Optional[str]) -> Any:
    if not candidate:
        return None
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def _outermost_json(text: str) -> Optional[str]:
    starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start : end + 1]

"""Turn grading responses into validated ``Grade`` objects.

Also holds the local position-aligned word diff shown in the result view
when model grading fails.
"""
from __future__ import annotations

import json
import re

from dictation_trainer.errors import GradingParseError
from dictation_trainer.models import (
    DELETION,
    INSERTION,
    SUBSTITUTION,
    Grade,
    Mistake,
)

_PUNCT = re.compile(r"[^\w']+")


def _extract_json(text: str) -> dict | None:
    """Extract a JSON object from a model response, handling markdown code fences.

    Tries the whole text first, then a fenced block, then the outermost
    ``{…}`` span.
    """
    text = text.strip()
    candidates = [text]
    m = re.search(r"```(?:json)?\s*\n?({.*?})\s*\n?```", text, re.DOTALL)
    if m:
        candidates.append(m.group(1))
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _number(value, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_grading_response(text: str) -> Grade:
    """Parse a grading response and enforce the WER/score invariants.

    Raises ``GradingParseError`` when no JSON object can be found. Field
    names from older prompts (``japanese_explanation``,
    ``alternative_expressions``, mistake ``type``) are accepted.
    """
    data = _extract_json(text)
    if data is None:
        raise GradingParseError(f"grading response is not valid JSON: {text[:120]!r}")
    if "wer" not in data and "score" not in data:
        raise GradingParseError("grading response has neither 'wer' nor 'score'")

    wer = _number(data.get("wer"), -1.0)
    score = _number(data.get("score"), -1.0)

    mistakes = []
    for raw in data.get("mistakes") or []:
        if isinstance(raw, dict):
            try:
                mistakes.append(Mistake.from_dict(raw))
            except (TypeError, ValueError):
                continue

    explanation = data.get("explanation") or data.get("japanese_explanation") or ""
    alternatives = data.get("alternatives") or data.get("alternative_expressions") or []

    grade = Grade(
        wer=wer,
        score=round(score) if 0 <= score <= 100 else -1,
        mistakes=mistakes,
        explanation=str(explanation),
        alternatives=[str(a) for a in alternatives if a],
    )
    return grade.validate()


def split_words(text: str) -> list[str]:
    """Lower-cased words with punctuation removed (apostrophes kept)."""
    return [w for w in _PUNCT.sub(" ", text.lower()).split() if w]


def align_words(reference: str, user_input: str) -> list[Mistake]:
    """Compare word ``i`` of the reference with word ``i`` of the input.

    Not an edit-distance alignment: a single dropped word shifts every later
    word into a substitution.
    """
    expected = split_words(reference)
    actual = split_words(user_input)
    mistakes = []
    for i in range(max(len(expected), len(actual))):
        if i < len(expected) and i < len(actual):
            if expected[i] != actual[i]:
                mistakes.append(Mistake(i, expected[i], actual[i], SUBSTITUTION))
        elif i < len(expected):
            mistakes.append(Mistake(i, expected[i], "", DELETION))
        else:
            mistakes.append(Mistake(i, "", actual[i], INSERTION))
    return mistakes


def local_grade(reference: str, user_input: str) -> Grade:
    mistakes = align_words(reference, user_input)
    total = len(split_words(reference))
    if total == 0:
        return Grade(wer=1.0, score=0, mistakes=mistakes)
    wer = min(1.0, len(mistakes) / total)
    return Grade(
        wer=wer,
        score=round(100 * (1 - wer)),
        mistakes=mistakes,
        explanation="Graded locally by word position.",
    )

"""Prompt templates for sentence generation and grading."""
from __future__ import annotations

SENTENCE_SYSTEM_PROMPT = (
    "You are an English teacher creating sentences for dictation practice. "
    "Create natural, contextually appropriate sentences."
)

SENTENCE_PROMPT = """\
Generate a single English sentence for dictation practice.
Requirements:
- Topic: {topic}
- Difficulty: TOEIC {level} level ({level_band})
- Length: approximately {words} words
- Natural, conversational English
- No quotation marks
- Return only the sentence, nothing else
"""

GRADING_SYSTEM_PROMPT = """\
You are an English teacher grading dictation exercises for learners whose \
first language is {language}.
Compare the reference sentence with the learner's input word by word, \
ignoring capitalisation and punctuation.

Respond in this exact JSON format only, with no other text:
{{
  "wer": 0.15,
  "score": 85,
  "mistakes": [
    {{"position": 3, "expected": "going", "actual": "gonna", "kind": "substitution"}}
  ],
  "explanation": "Feedback for the learner, written in {language}",
  "alternatives": [
    "Another natural way to say the reference sentence"
  ]
}}

Rules:
- "position" is the 0-based index of the word in the reference sentence.
- "kind" is one of "substitution", "insertion", "deletion". For an insertion \
"expected" is empty; for a deletion "actual" is empty.
- WER (word error rate) = (insertions + deletions + substitutions) / number of \
reference words, between 0 and 1.
- Score is 100 * (1 - WER), rounded to the nearest integer.
- Write the explanation in natural {language}.
"""

GRADING_PROMPT = """\
Reference sentence: {reference}
Learner input: {user_input}

Grade the dictation and provide feedback.
"""


def level_band(level: int) -> str:
    if level < 500:
        return "basic vocabulary, short clauses"
    if level < 700:
        return "intermediate complexity"
    if level < 860:
        return "upper-intermediate, some idioms"
    return "advanced vocabulary and structure"


def format_sentence_prompt(topic: str, level: int, words: int) -> str:
    return SENTENCE_PROMPT.format(
        topic=topic,
        level=level,
        level_band=level_band(level),
        words=words,
    )


def format_grading_prompt(reference: str, user_input: str) -> str:
    return GRADING_PROMPT.format(reference=reference, user_input=user_input)


def format_grading_system(language: str) -> str:
    return GRADING_SYSTEM_PROMPT.format(language=language)

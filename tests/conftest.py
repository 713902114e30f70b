"""Shared test fixtures."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from dictation_trainer.audio import AudioCache
from dictation_trainer.config import Settings
from dictation_trainer.history import HistoryStore
from dictation_trainer.models import DictationSession, Grade, Mistake


class FakeLLM:
    """Scripted LLM; an Exception in *responses* is raised instead of returned."""

    def __init__(self, responses=None):
        self._responses = responses or []
        self.calls: list[dict] = []

    async def generate(self, prompt: str, temperature: float = 0.7, system: str | None = None) -> str:
        idx = min(len(self.calls), len(self._responses) - 1)
        self.calls.append({"prompt": prompt, "temperature": temperature, "system": system})
        response = self._responses[idx]
        if isinstance(response, Exception):
            raise response
        return response

    def name(self) -> str:
        return "fake-llm"

    @property
    def call_count(self):
        return len(self.calls)


class FakeTTS:
    """Simple fake TTS that avoids AsyncMock's `name` attribute issue."""

    def __init__(self, audio: bytes = b"fake mp3 data", side_effect=None):
        self._audio = audio
        self._side_effect = side_effect
        self.synthesize_called = 0

    async def synthesize(self, text: str, voice: str, speed: float) -> bytes:
        self.synthesize_called += 1
        if self._side_effect:
            if isinstance(self._side_effect, Exception):
                raise self._side_effect
            return await self._side_effect(text, voice, speed)
        return self._audio

    def name(self) -> str:
        return "fake-tts"


GRADING_RESPONSE = json.dumps({
    "wer": 0.2,
    "score": 80,
    "mistakes": [
        {"position": 1, "expected": "meeting", "actual": "meting", "kind": "substitution"},
    ],
    "explanation": "「meeting」のスペルに注意しましょう。",
    "alternatives": ["The meeting begins at nine."],
})


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def cache(tmp_path):
    return AudioCache(tmp_path / "audio")


@pytest.fixture
def history(tmp_path):
    return HistoryStore(tmp_path / "history.jsonl")


def make_session(
    topic="Business",
    score=80,
    wer=0.2,
    mistakes=None,
    created_at=None,
    graded=True,
) -> DictationSession:
    session = DictationSession(
        config=Settings(topic=topic),
        created_at=created_at or datetime.now(timezone.utc) - timedelta(hours=1),
        sentence="The meeting starts at nine.",
        user_input="The meting starts at nine.",
    )
    if graded:
        session.attach_grade(Grade(wer=wer, score=score, mistakes=mistakes or []))
    return session


@pytest.fixture
def sample_session():
    """A graded session with one spelling mistake."""
    return make_session(mistakes=[Mistake(1, "meeting", "meting", "substitution")])

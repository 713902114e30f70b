from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from dictation_trainer.config import Settings
from dictation_trainer.errors import MalformedRecord

SUBSTITUTION = "substitution"
INSERTION = "insertion"
DELETION = "deletion"
MISTAKE_KINDS = (SUBSTITUTION, INSERTION, DELETION)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _require_object(value, what: str) -> dict:
    if not isinstance(value, dict):
        raise MalformedRecord(f"{what} must be an object, got {type(value).__name__}")
    return value


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class Mistake:
    position: int
    expected: str
    actual: str
    kind: str  # substitution | insertion | deletion

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "expected": self.expected,
            "actual": self.actual,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> Mistake:
        raw = _require_object(raw, "mistake")
        kind = raw.get("kind", raw.get("type", SUBSTITUTION))
        if kind not in MISTAKE_KINDS:
            kind = SUBSTITUTION
        expected = str(raw.get("expected") or "")
        actual = str(raw.get("actual") or "")
        if kind == INSERTION:
            expected = ""
        elif kind == DELETION:
            actual = ""
        return cls(
            position=int(raw.get("position", 0)),
            expected=expected,
            actual=actual,
            kind=kind,
        )


@dataclass
class Grade:
    wer: float
    score: int
    mistakes: list[Mistake] = field(default_factory=list)
    explanation: str = ""
    alternatives: list[str] = field(default_factory=list)

    @property
    def is_perfect(self) -> bool:
        return self.wer == 0.0 and self.score == 100

    def validate(self) -> Grade:
        """Reset an out-of-range WER to 0, then recompute an out-of-range score from it."""
        if not 0.0 <= self.wer <= 1.0:
            self.wer = 0.0
        if not 0 <= self.score <= 100:
            self.score = round(100 * (1 - self.wer))
        return self

    def to_dict(self) -> dict:
        return {
            "wer": self.wer,
            "score": self.score,
            "mistakes": [m.to_dict() for m in self.mistakes],
            "explanation": self.explanation,
            "alternatives": list(self.alternatives),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> Grade:
        raw = _require_object(raw, "grade")
        return cls(
            wer=float(raw["wer"]),
            score=int(raw["score"]),
            mistakes=[Mistake.from_dict(m) for m in raw.get("mistakes") or []],
            explanation=raw.get("explanation", ""),
            alternatives=list(raw.get("alternatives") or []),
        )


@dataclass
class DictationSession:
    config: Settings
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)
    sentence: str = ""
    audio_path: str | None = None
    audio_cached: bool = False
    user_input: str | None = None
    started_at: datetime | None = None  # audio finished, learner starts typing
    ended_at: datetime | None = None    # answer submitted
    duration_secs: float = 0.0
    replay_count: int = 0
    grade: Grade | None = None
    completed: bool = False

    def attach_grade(self, grade: Grade) -> None:
        self.grade = grade
        self.completed = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": _format_time(self.created_at),
            "config": self.config.to_dict(),
            "sentence": self.sentence,
            "audio_path": self.audio_path,
            "audio_cached": self.audio_cached,
            "user_input": self.user_input,
            "started_at": _format_time(self.started_at),
            "ended_at": _format_time(self.ended_at),
            "duration_secs": self.duration_secs,
            "replay_count": self.replay_count,
            "grade": self.grade.to_dict() if self.grade else None,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> DictationSession:
        if not isinstance(raw, dict):
            raise MalformedRecord(f"expected an object, got {type(raw).__name__}")
        try:
            grade = Grade.from_dict(raw["grade"]) if raw.get("grade") else None
            created_at = _parse_time(raw["created_at"])
            if created_at is None:
                raise MalformedRecord("session record has no created_at")
            return cls(
                id=raw["id"],
                created_at=created_at,
                config=Settings.from_dict(_require_object(raw.get("config") or {}, "config")),
                sentence=raw.get("sentence", ""),
                audio_path=raw.get("audio_path"),
                audio_cached=bool(raw.get("audio_cached", False)),
                user_input=raw.get("user_input"),
                started_at=_parse_time(raw.get("started_at")),
                ended_at=_parse_time(raw.get("ended_at")),
                duration_secs=float(raw.get("duration_secs") or 0.0),
                replay_count=int(raw.get("replay_count") or 0),
                grade=grade,
                completed=grade is not None,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedRecord(f"invalid session record: {e}") from e

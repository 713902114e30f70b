"""Append-only session history (JSON Lines) and derived statistics."""
from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from dictation_trainer.errors import HistoryIOError, MalformedRecord
from dictation_trainer.models import DictationSession

log = logging.getLogger("dictation_trainer.history")

# One lock per process: every HistoryStore appends under it so lines never interleave.
_write_lock = threading.Lock()


@dataclass
class TopicStats:
    count: int = 0
    average_score: float = 0.0
    average_wer: float = 0.0

    def add(self, score: float, wer: float) -> None:
        self.count += 1
        self.average_score += (score - self.average_score) / self.count
        self.average_wer += (wer - self.average_wer) / self.count


@dataclass
class DailyStats:
    day: date
    session_count: int = 0
    average_score: float = 0.0
    average_wer: float = 0.0

    def add(self, score: float, wer: float) -> None:
        self.session_count += 1
        self.average_score += (score - self.average_score) / self.session_count
        self.average_wer += (wer - self.average_wer) / self.session_count


@dataclass
class MistakeFrequency:
    expected: str
    actual: str
    frequency: int


@dataclass
class Statistics:
    total_sessions: int = 0
    graded_sessions: int = 0
    average_score: float = 0.0
    average_wer: float = 0.0
    topic_breakdown: dict[str, TopicStats] = field(default_factory=dict)
    common_mistakes: list[MistakeFrequency] = field(default_factory=list)
    recent_progress: list[DailyStats] = field(default_factory=list)


class HistoryStore:
    def __init__(self, path: Path):
        self.path = Path(path)

    def save_session(self, session: DictationSession) -> None:
        line = json.dumps(session.to_dict(), ensure_ascii=False) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with _write_lock, open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            raise HistoryIOError(f"failed to append to {self.path}: {e}") from e
        log.info("Saved session %s to history", session.id)

    def load_all_sessions(self) -> Iterator[DictationSession]:
        try:
            f = open(self.path, "rb")
        except FileNotFoundError:
            return
        except OSError as e:
            raise HistoryIOError(f"failed to open {self.path}: {e}") from e
        with f:
            try:
                for lineno, raw in enumerate(f, 1):
                    if not raw.strip():
                        continue
                    # a crash mid-append can leave a truncated or cut-off line
                    try:
                        yield DictationSession.from_dict(json.loads(raw.decode("utf-8")))
                    except (UnicodeDecodeError, json.JSONDecodeError, MalformedRecord) as e:
                        log.warning("Skipping malformed history line %d: %s", lineno, e)
            except OSError as e:
                raise HistoryIOError(f"failed to read {self.path}: {e}") from e

    def load_sessions(self, window_days: int) -> Iterator[DictationSession]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=window_days)
        for session in self.load_all_sessions():
            if session.created_at > cutoff:
                yield session

    def recent_sessions(self, limit: int = 10) -> list[DictationSession]:
        sessions = list(self.load_all_sessions())
        return sessions[-limit:] if limit > 0 else []

    def calculate_statistics(self, window_days: int) -> Statistics:
        stats = Statistics()
        mistake_counts: dict[tuple[str, str], int] = {}
        daily: dict[date, DailyStats] = {}

        for session in self.load_sessions(window_days):
            stats.total_sessions += 1
            grade = session.grade
            if grade is None:
                continue
            stats.graded_sessions += 1
            n = stats.graded_sessions
            stats.average_score += (grade.score - stats.average_score) / n
            stats.average_wer += (grade.wer - stats.average_wer) / n

            topic = stats.topic_breakdown.setdefault(session.config.topic, TopicStats())
            topic.add(grade.score, grade.wer)

            for mistake in grade.mistakes:
                pair = (mistake.expected, mistake.actual)
                mistake_counts[pair] = mistake_counts.get(pair, 0) + 1

            day = session.created_at.astimezone().date()
            daily.setdefault(day, DailyStats(day)).add(grade.score, grade.wer)

        # sorted() is stable, so equal counts keep first-seen order
        common = [(pair, n) for pair, n in mistake_counts.items() if n >= 2]
        stats.common_mistakes = [
            MistakeFrequency(expected, actual, n)
            for (expected, actual), n in sorted(common, key=lambda item: -item[1])
        ]
        stats.recent_progress = [daily[d] for d in sorted(daily)]
        return stats

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise HistoryIOError(f"failed to delete {self.path}: {e}") from e
        log.info("Cleared history %s", self.path)

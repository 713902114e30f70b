"""Tests for data models and their JSON records."""
from __future__ import annotations

import pytest

from dictation_trainer.config import Settings
from dictation_trainer.errors import MalformedRecord
from dictation_trainer.models import DictationSession, Grade, Mistake


class TestMistake:
    def test_type_alias_accepted(self):
        m = Mistake.from_dict({"position": 2, "expected": "their", "actual": "there", "type": "spelling"})
        assert m.kind == "substitution"
        assert m.expected == "their"

    def test_insertion_has_empty_expected(self):
        m = Mistake.from_dict({"position": 4, "expected": "x", "actual": "very", "kind": "insertion"})
        assert m.expected == ""
        assert m.actual == "very"

    def test_deletion_has_empty_actual(self):
        m = Mistake.from_dict({"position": 1, "expected": "the", "actual": "x", "kind": "deletion"})
        assert m.expected == "the"
        assert m.actual == ""


class TestGrade:
    def test_wer_out_of_range_resets_to_zero(self):
        g = Grade(wer=1.5, score=50).validate()
        assert g.wer == 0.0
        assert g.score == 50

    def test_score_recomputed_from_wer(self):
        g = Grade(wer=0.2, score=150).validate()
        assert g.score == 80

    def test_negative_score_recomputed(self):
        g = Grade(wer=0.25, score=-3).validate()
        assert g.score == 75

    def test_valid_grade_untouched(self):
        g = Grade(wer=0.1, score=90).validate()
        assert (g.wer, g.score) == (0.1, 90)

    def test_is_perfect(self):
        assert Grade(wer=0.0, score=100).is_perfect
        assert not Grade(wer=0.1, score=90).is_perfect


class TestDictationSession:
    def test_new_session_is_incomplete(self):
        s = DictationSession(config=Settings())
        assert s.grade is None
        assert not s.completed
        assert s.replay_count == 0
        assert s.created_at.tzinfo is not None

    def test_attach_grade_completes(self):
        s = DictationSession(config=Settings())
        s.attach_grade(Grade(wer=0.0, score=100))
        assert s.completed

    def test_record_roundtrip(self, sample_session):
        sample_session.replay_count = 2
        restored = DictationSession.from_dict(sample_session.to_dict())
        assert restored.id == sample_session.id
        assert restored.created_at == sample_session.created_at
        assert restored.replay_count == 2
        assert restored.grade.score == sample_session.grade.score
        assert restored.config.topic == sample_session.config.topic
        assert restored.completed

    def test_config_snapshot_is_validated(self):
        raw = DictationSession(config=Settings()).to_dict()
        raw["config"]["level"] = 5
        assert DictationSession.from_dict(raw).config.level == 700

    def test_naive_timestamp_treated_as_utc(self):
        raw = DictationSession(config=Settings()).to_dict()
        raw["created_at"] = "2026-01-02T03:04:05"
        s = DictationSession.from_dict(raw)
        assert s.created_at.utcoffset().total_seconds() == 0

    @pytest.mark.parametrize("raw", [
        [],
        {"created_at": "2026-01-01T00:00:00+00:00"},
        {"id": "x", "created_at": "yesterday"},
        {"id": "x", "created_at": "2026-01-01T00:00:00+00:00", "grade": {"score": 90}},
        {"id": "x", "created_at": None},
        {"id": "x", "created_at": ""},
        {"id": "x", "created_at": "2026-01-01T00:00:00+00:00", "config": [1]},
        {"id": "x", "created_at": "2026-01-01T00:00:00+00:00",
         "grade": {"wer": 0.1, "score": 90, "mistakes": ["oops"]}},
    ])
    def test_malformed_records(self, raw):
        with pytest.raises(MalformedRecord):
            DictationSession.from_dict(raw)

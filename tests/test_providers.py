"""Tests for provider helpers that do not need network access."""
from __future__ import annotations

from dictation_trainer.config import VOICES
from dictation_trainer.providers.tts_edge import EDGE_VOICES, edge_rate
from dictation_trainer.providers.tts_elevenlabs import ELEVENLABS_VOICES


class TestEdgeRate:
    def test_normal_speed(self):
        assert edge_rate(1.0) == "+0%"

    def test_faster_and_slower(self):
        assert edge_rate(1.5) == "+50%"
        assert edge_rate(0.7) == "-30%"
        assert edge_rate(2.0) == "+100%"


class TestVoiceMaps:
    def test_every_voice_has_an_edge_voice(self):
        assert set(EDGE_VOICES) == set(VOICES)

    def test_every_voice_has_an_elevenlabs_voice(self):
        assert set(ELEVENLABS_VOICES) == set(VOICES)

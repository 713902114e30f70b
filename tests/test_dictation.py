"""Tests for the dictation service: retries, timeouts, caching and grading."""
from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from dictation_trainer.dictation import DictationService, clean_sentence, with_retry
from dictation_trainer.errors import (
    CacheIOError,
    Cancelled,
    GradingParseError,
    UpstreamError,
    UpstreamTimeout,
    UpstreamTransient,
)

from conftest import GRADING_RESPONSE, FakeLLM, FakeTTS


class _Flaky:
    """Fails *failures* times, then returns *result*."""

    def __init__(self, failures: int, result="ok", error=None):
        self.failures = failures
        self.result = result
        self.error = error or UpstreamTransient("temporary failure")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


@pytest.fixture
def delays():
    recorded = []

    async def fake_wait(delay, cancel):
        recorded.append(delay)

    with patch("dictation_trainer.dictation._wait", fake_wait):
        yield recorded


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, delays):
        op = _Flaky(0)
        assert await with_retry(op, what="op", timeout=1) == "ok"
        assert op.calls == 1
        assert delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_two_failures(self, delays):
        op = _Flaky(2)
        assert await with_retry(op, what="op", timeout=1) == "ok"
        assert op.calls == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, delays):
        op = _Flaky(5)
        with pytest.raises(UpstreamError) as exc_info:
            await with_retry(op, what="op", timeout=1)
        assert op.calls == 3
        assert delays == [1.0, 2.0]
        assert isinstance(exc_info.value.__cause__, UpstreamTransient)

    @pytest.mark.asyncio
    async def test_library_errors_are_retried(self, delays):
        op = _Flaky(1, error=ConnectionError("reset by peer"))
        assert await with_retry(op, what="op", timeout=1) == "ok"
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self, delays):
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            await asyncio.sleep(10)

        with pytest.raises(UpstreamTimeout):
            await with_retry(slow, what="op", timeout=0.01)
        assert calls == 1
        assert delays == []

    @pytest.mark.asyncio
    async def test_other_dictation_errors_propagate(self, delays):
        op = _Flaky(1, error=GradingParseError("bad json"))
        with pytest.raises(GradingParseError):
            await with_retry(op, what="op", timeout=1)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self):
        cancel = asyncio.Event()
        cancel.set()
        op = _Flaky(0)
        with pytest.raises(Cancelled):
            await with_retry(op, what="op", timeout=1, cancel=cancel)
        assert op.calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self):
        cancel = asyncio.Event()
        op = _Flaky(5)

        async def cancel_soon():
            await asyncio.sleep(0.01)
            cancel.set()

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(Cancelled):
            await with_retry(op, what="op", timeout=1, cancel=cancel, base_delay=5.0)
        await canceller
        assert op.calls == 1


class TestCleanSentence:
    def test_strips_quotes_and_whitespace(self):
        assert clean_sentence('  "The meeting starts at nine."\n') == "The meeting starts at nine."

    def test_first_non_empty_line(self):
        assert clean_sentence("\n\nHello there.\nSecond line") == "Hello there."

    def test_empty(self):
        assert clean_sentence("   ") == ""


class TestDictationService:
    @pytest.mark.asyncio
    async def test_generate_sentence(self, cache):
        llm = FakeLLM(['"The meeting starts at nine."'])
        service = DictationService(llm, FakeTTS(), cache)
        sentence = await service.generate_sentence("Business", 700, 6)
        assert sentence == "The meeting starts at nine."
        assert llm.calls[0]["temperature"] == 0.7
        assert "Topic: Business" in llm.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_empty_sentence_is_retried(self, cache, delays):
        llm = FakeLLM(["", "Hello there."])
        service = DictationService(llm, FakeTTS(), cache)
        assert await service.generate_sentence("Daily", 500, 5) == "Hello there."
        assert llm.call_count == 2

    @pytest.mark.asyncio
    async def test_generate_audio_miss_then_hit(self, cache):
        tts = FakeTTS(audio=b"ID3 audio")
        service = DictationService(FakeLLM(["x"]), tts, cache)

        first = await service.generate_audio("Hello there.", "alloy", 1.0)
        assert not first.cached
        assert first.path.read_bytes() == b"ID3 audio"

        second = await service.generate_audio("Hello there.", "alloy", 1.0)
        assert second.cached
        assert second.path == first.path
        assert tts.synthesize_called == 1

    @pytest.mark.asyncio
    async def test_no_cache_skips_lookup(self, cache):
        tts = FakeTTS()
        service = DictationService(FakeLLM(["x"]), tts, cache)
        await service.generate_audio("Hello.", "alloy", 1.0)
        result = await service.generate_audio("Hello.", "alloy", 1.0, use_cache=False)
        assert not result.cached
        assert tts.synthesize_called == 2

    @pytest.mark.asyncio
    async def test_different_voice_is_a_miss(self, cache):
        tts = FakeTTS()
        service = DictationService(FakeLLM(["x"]), tts, cache)
        await service.generate_audio("Hello.", "alloy", 1.0)
        await service.generate_audio("Hello.", "nova", 1.0)
        assert tts.synthesize_called == 2

    @pytest.mark.asyncio
    async def test_cache_write_failure(self, tmp_path):
        from dictation_trainer.audio import AudioCache

        blocker = tmp_path / "blocker"
        blocker.write_text("")
        service = DictationService(FakeLLM(["x"]), FakeTTS(), AudioCache(blocker / "audio"))
        with pytest.raises(CacheIOError) as exc_info:
            await service.generate_audio("Hello.", "alloy", 1.0)
        assert exc_info.value.audio == b"fake mp3 data"

    @pytest.mark.asyncio
    async def test_synthesis_failure_exhausts_retries(self, cache, delays):
        tts = FakeTTS(side_effect=RuntimeError("503 Service Unavailable"))
        service = DictationService(FakeLLM(["x"]), tts, cache)
        with pytest.raises(UpstreamError):
            await service.generate_audio("Hello.", "alloy", 1.0)
        assert tts.synthesize_called == 3
        assert not cache.exists("Hello.", "alloy", 1.0)

    @pytest.mark.asyncio
    async def test_grade_dictation(self, cache):
        llm = FakeLLM([GRADING_RESPONSE])
        service = DictationService(llm, FakeTTS(), cache)
        grade = await service.grade_dictation(
            "The meeting starts at nine.", "The meting starts at nine.", language="Japanese",
        )
        assert grade.score == 80
        assert grade.mistakes[0].expected == "meeting"
        assert llm.calls[0]["temperature"] == 0.0
        assert "Japanese" in llm.calls[0]["system"]

    @pytest.mark.asyncio
    async def test_grade_parse_failure_is_not_retried(self, cache, delays):
        llm = FakeLLM(["no json here"])
        service = DictationService(llm, FakeTTS(), cache)
        with pytest.raises(GradingParseError):
            await service.grade_dictation("a", "b")
        assert llm.call_count == 1

    @pytest.mark.asyncio
    async def test_full_round(self, cache):
        llm = FakeLLM(["The meeting starts at nine.", GRADING_RESPONSE])
        tts = FakeTTS()
        service = DictationService(llm, tts, cache)

        sentence = await service.generate_sentence("Business", 700, 6)
        audio = await service.generate_audio(sentence, "alloy", 1.0)
        grade = await service.grade_dictation(sentence, "The meting starts at nine.")

        assert audio.path.exists()
        assert grade.wer == pytest.approx(0.2)
        assert llm.call_count == 2
        assert tts.synthesize_called == 1

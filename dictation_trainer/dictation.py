"""Sequence sentence generation, speech synthesis and grading.

Every upstream call goes through ``with_retry``: up to three attempts with a
1 s, 2 s back-off, each attempt bounded by a per-operation timeout. Timeouts
and cancellation are never retried.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from dictation_trainer.errors import (
    CacheIOError,
    Cancelled,
    DictationError,
    UpstreamError,
    UpstreamTimeout,
    UpstreamTransient,
)
from dictation_trainer.grader import parse_grading_response
from dictation_trainer.models import Grade
from dictation_trainer.prompts import (
    SENTENCE_SYSTEM_PROMPT,
    format_grading_prompt,
    format_grading_system,
    format_sentence_prompt,
)

if TYPE_CHECKING:
    from dictation_trainer.audio import AudioCache
    from dictation_trainer.providers.base import LLMProvider, TTSProvider

log = logging.getLogger("dictation_trainer.dictation")

T = TypeVar("T")

MAX_ATTEMPTS = 3
BASE_DELAY = 1.0

SENTENCE_TIMEOUT = 30.0
AUDIO_TIMEOUT = 45.0
GRADING_TIMEOUT = 30.0

_QUOTES = "\"'“”‘’"


async def _wait(delay: float, cancel: asyncio.Event | None) -> None:
    """Sleep *delay* seconds; raise ``Cancelled`` if *cancel* fires first."""
    if cancel is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise Cancelled("cancelled while waiting to retry")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    what: str,
    timeout: float,
    cancel: asyncio.Event | None = None,
    attempts: int = MAX_ATTEMPTS,
    base_delay: float = BASE_DELAY,
) -> T:
    last_error: Exception | None = None
    for attempt in range(attempts):
        if cancel is not None and cancel.is_set():
            raise Cancelled(f"{what} cancelled")
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamTimeout(f"{what} timed out after {timeout:.0f}s") from e
        except UpstreamTransient as e:
            last_error = e
        except DictationError:
            raise
        except Exception as e:
            last_error = UpstreamTransient(f"{what} attempt {attempt + 1} failed: {e}")
            last_error.__cause__ = e

        log.warning("%s failed (attempt %d/%d): %s", what, attempt + 1, attempts, last_error)
        if attempt < attempts - 1:
            delay = base_delay * (2 ** attempt)
            log.info("Retrying %s in %.1fs", what, delay)
            await _wait(delay, cancel)

    raise UpstreamError(f"{what} failed after {attempts} attempts: {last_error}") from last_error


def clean_sentence(text: str) -> str:
    """First non-empty line of a model reply, without surrounding quotes."""
    for line in text.strip().splitlines():
        line = line.strip().strip(_QUOTES).strip()
        if line:
            return line
    return ""


@dataclass
class AudioResult:
    path: Path
    cached: bool


class DictationService:
    def __init__(
        self,
        llm: LLMProvider,
        tts: TTSProvider,
        cache: AudioCache,
        base_delay: float = BASE_DELAY,
    ):
        self.llm = llm
        self.tts = tts
        self.cache = cache
        self.base_delay = base_delay

    async def generate_sentence(
        self,
        topic: str,
        level: int,
        words: int,
        cancel: asyncio.Event | None = None,
    ) -> str:
        prompt = format_sentence_prompt(topic, level, words)

        async def _call() -> str:
            sentence = clean_sentence(
                await self.llm.generate(prompt, temperature=0.7, system=SENTENCE_SYSTEM_PROMPT)
            )
            if not sentence:
                raise UpstreamTransient("model returned an empty sentence")
            return sentence

        log.info("Generating sentence - topic=%s level=%d words=%d", topic, level, words)
        t0 = time.monotonic()
        sentence = await with_retry(
            _call,
            what="sentence generation",
            timeout=SENTENCE_TIMEOUT,
            cancel=cancel,
            base_delay=self.base_delay,
        )
        log.info("Generated sentence in %.1fs (%d words)", time.monotonic() - t0, len(sentence.split()))
        return sentence

    async def generate_audio(
        self,
        text: str,
        voice: str,
        speed: float,
        cancel: asyncio.Event | None = None,
        use_cache: bool = True,
    ) -> AudioResult:
        """Return a playable file for *text*, synthesizing only on a cache miss.

        A failed cache write raises ``CacheIOError`` with the synthesized bytes
        on ``audio``; synthesis failures raise ``UpstreamError`` subclasses.
        """
        if use_cache and self.cache.exists(text, voice, speed):
            log.info("Audio cache HIT voice=%s speed=%.1f text_len=%d", voice, speed, len(text))
            return AudioResult(self.cache.path(text, voice, speed), cached=True)

        log.info("Audio cache MISS voice=%s speed=%.1f text_len=%d", voice, speed, len(text))
        audio = await with_retry(
            lambda: self.tts.synthesize(text, voice, speed),
            what="speech synthesis",
            timeout=AUDIO_TIMEOUT,
            cancel=cancel,
            base_delay=self.base_delay,
        )
        if not audio:
            raise UpstreamError("speech synthesis returned no audio")
        try:
            path = self.cache.save(text, voice, speed, audio)
        except CacheIOError as e:
            e.audio = audio
            raise
        log.info("Audio saved to cache, size=%d bytes", len(audio))
        return AudioResult(path, cached=False)

    async def grade_dictation(
        self,
        reference: str,
        user_input: str,
        cancel: asyncio.Event | None = None,
        language: str = "Japanese",
    ) -> Grade:
        prompt = format_grading_prompt(reference, user_input)
        system = format_grading_system(language)
        response = await with_retry(
            lambda: self.llm.generate(prompt, temperature=0.0, system=system),
            what="grading",
            timeout=GRADING_TIMEOUT,
            cancel=cancel,
            base_delay=self.base_delay,
        )
        grade = parse_grading_response(response)
        log.info("Graded: score=%d wer=%.2f mistakes=%d", grade.score, grade.wer, len(grade.mistakes))
        return grade

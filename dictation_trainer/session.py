"""Dictation round state machine.

``SessionMachine.handle`` takes one event (a key press or the completion of
an operation) and returns the commands the event loop should run next. The
machine never performs I/O itself, so every transition can be driven
directly from tests.

Round lifecycle::

    Welcome -> Generating -> Playing -> Listening -> Grading -> ShowingResult
                  ^                        |  ^                     |
                  |                        v  |                     |
                  +------------------- Settings <-------------------+
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Union

from dictation_trainer.config import (
    MAX_LEVEL,
    MAX_SPEED,
    MAX_WORDS,
    MIN_LEVEL,
    MIN_SPEED,
    MIN_WORDS,
    TOPICS,
    VOICES,
    Settings,
)
from dictation_trainer.history import Statistics
from dictation_trainer.models import DictationSession, Grade, utcnow

log = logging.getLogger("dictation_trainer.session")

MAX_INPUT_LENGTH = 500
STATS_WINDOW_DAYS = 30
SETTINGS_FIELDS = ("voice", "level", "topic", "words", "speed")
LEVEL_STEP = 50
SPEED_STEP = 0.1

ENTER = "enter"
ESC = "esc"
BACKSPACE = "backspace"
UP = "up"
DOWN = "down"
LEFT = "left"
RIGHT = "right"
CTRL_C = "ctrl+c"
CTRL_N = "ctrl+n"
CTRL_R = "ctrl+r"
CTRL_S = "ctrl+s"


class State(Enum):
    WELCOME = "Welcome"
    GENERATING = "Generating"
    PLAYING = "Playing"
    LISTENING = "Listening"
    GRADING = "Grading"
    SHOWING_RESULT = "ShowingResult"
    SETTINGS = "Settings"
    HELP = "Help"


# ── Events ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KeyPressed:
    key: str


@dataclass(frozen=True)
class Resized:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class SentenceReady:
    sentence: str


@dataclass(frozen=True)
class SentenceFailed:
    error: str


@dataclass(frozen=True)
class AudioReady:
    path: str
    cached: bool = False
    warning: str | None = None


@dataclass(frozen=True)
class AudioFailed:
    error: str


@dataclass(frozen=True)
class PlaybackFinished:
    error: str | None = None


@dataclass(frozen=True)
class GradeReady:
    grade: Grade


@dataclass(frozen=True)
class GradeFailed:
    error: str


@dataclass(frozen=True)
class SessionSaved:
    error: str | None = None


@dataclass(frozen=True)
class SettingsPersisted:
    error: str | None = None


@dataclass(frozen=True)
class StatisticsReady:
    stats: Statistics | None
    error: str | None = None


Event = Union[
    KeyPressed, Resized, Tick,
    SentenceReady, SentenceFailed,
    AudioReady, AudioFailed, PlaybackFinished,
    GradeReady, GradeFailed,
    SessionSaved, SettingsPersisted, StatisticsReady,
]


# ── Commands ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GenerateSentence:
    topic: str
    level: int
    words: int


@dataclass(frozen=True)
class GenerateAudio:
    text: str
    voice: str
    speed: float
    use_cache: bool = True


@dataclass(frozen=True)
class PlayAudio:
    path: str


@dataclass(frozen=True)
class GradeDictation:
    reference: str
    user_input: str
    language: str


@dataclass(frozen=True)
class SaveSession:
    session: DictationSession


@dataclass(frozen=True)
class PersistSettings:
    settings: Settings


@dataclass(frozen=True)
class RefreshStatistics:
    window_days: int = STATS_WINDOW_DAYS


@dataclass(frozen=True)
class Quit:
    pass


Command = Union[
    GenerateSentence, GenerateAudio, PlayAudio, GradeDictation,
    SaveSession, PersistSettings, RefreshStatistics, Quit,
]

# Completion event -> the long-running command it answers.
_COMPLETES = {
    SentenceReady: GenerateSentence,
    SentenceFailed: GenerateSentence,
    AudioReady: GenerateAudio,
    AudioFailed: GenerateAudio,
    PlaybackFinished: PlayAudio,
    GradeReady: GradeDictation,
    GradeFailed: GradeDictation,
}


def _cycle(options: tuple[str, ...], current: str, direction: int) -> str:
    idx = options.index(current) if current in options else 0
    return options[(idx + direction) % len(options)]


def adjust_setting(draft: Settings, field: str, direction: int) -> None:
    """Step one practice field of *draft*, clamped to its valid range."""
    if field == "voice":
        draft.voice = _cycle(VOICES, draft.voice, direction)
    elif field == "level":
        draft.level = min(MAX_LEVEL, max(MIN_LEVEL, draft.level + direction * LEVEL_STEP))
    elif field == "topic":
        draft.topic = _cycle(TOPICS, draft.topic, direction)
    elif field == "words":
        draft.words = min(MAX_WORDS, max(MIN_WORDS, draft.words + direction))
    elif field == "speed":
        draft.speed = min(MAX_SPEED, max(MIN_SPEED, round(draft.speed + direction * SPEED_STEP, 1)))
    else:
        raise ValueError(f"Unknown setting: {field}")


class SessionMachine:
    def __init__(self, settings: Settings, clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.clock = clock

        self.state = State.WELCOME
        self.previous_state = State.WELCOME
        self.session: DictationSession | None = None
        self.round_started_at: datetime | None = None
        self.input_buffer = ""
        self.error: str | None = None
        self.message: str | None = None
        self.pending: type | None = None
        self.draft: Settings | None = None
        self.settings_index = 0
        self.stats: Statistics | None = None
        self.quitting = False
        self.width = 80
        self.height = 24
        self.spinner_frame = 0
        self._replay_returns_to_result = False

    # ── Dispatch ──────────────────────────────────────────────────────────

    def handle(self, event: Event) -> list[Command]:
        before = self.state
        commands = self._dispatch(event)
        if self.state is not before:
            log.info("State transition: %s -> %s", before.value, self.state.value)
        return commands

    def _dispatch(self, event: Event) -> list[Command]:
        if isinstance(event, KeyPressed):
            return self._on_key(event.key)
        if isinstance(event, Tick):
            if self.pending is not None:
                self.spinner_frame += 1
            return []
        if isinstance(event, Resized):
            self.width, self.height = event.width, event.height
            return []

        expected = _COMPLETES.get(type(event))
        if expected is not None:
            if self.pending is not expected:
                log.debug("Ignoring stale %s (pending=%s)", type(event).__name__, self.pending)
                return []
            self.pending = None

        if isinstance(event, SentenceReady):
            return self._on_sentence_ready(event.sentence)
        if isinstance(event, SentenceFailed):
            return self._fail(event.error, State.LISTENING)
        if isinstance(event, AudioReady):
            return self._on_audio_ready(event.path, event.cached, event.warning)
        if isinstance(event, AudioFailed):
            return self._fail(event.error, State.LISTENING)
        if isinstance(event, PlaybackFinished):
            return self._on_playback_finished(event.error)
        if isinstance(event, GradeReady):
            return self._on_grade_ready(event.grade)
        if isinstance(event, GradeFailed):
            return self._fail(event.error, State.SHOWING_RESULT)
        if isinstance(event, SessionSaved):
            if event.error:
                self.error = f"Could not save session: {event.error}"
            return [RefreshStatistics()]
        if isinstance(event, SettingsPersisted):
            if event.error:
                self.error = f"Could not save settings: {event.error}"
            return []
        if isinstance(event, StatisticsReady):
            if event.error:
                log.warning("Statistics unavailable: %s", event.error)
            else:
                self.stats = event.stats
            return []
        raise TypeError(f"Unhandled event: {event!r}")

    # ── Round lifecycle ───────────────────────────────────────────────────

    def _start_round(self) -> list[Command]:
        if self.pending is not None:
            return []
        self.session = None
        self.input_buffer = ""
        self.error = None
        self.message = None
        self._replay_returns_to_result = False
        self.round_started_at = self.clock()
        self.state = State.GENERATING
        self.pending = GenerateSentence
        return [GenerateSentence(self.settings.topic, self.settings.level, self.settings.words)]

    def _on_sentence_ready(self, sentence: str) -> list[Command]:
        self.session = DictationSession(
            config=self.settings.copy(),
            created_at=self.round_started_at or self.clock(),
            sentence=sentence,
        )
        self.state = State.PLAYING
        return self._request_audio()

    def _request_audio(self) -> list[Command]:
        cfg = self.session.config
        self.pending = GenerateAudio
        return [GenerateAudio(self.session.sentence, cfg.voice, cfg.speed, use_cache=not cfg.no_cache)]

    def _on_audio_ready(self, path: str, cached: bool, warning: str | None = None) -> list[Command]:
        if warning:
            self.error = warning
        self.session.audio_path = path
        self.session.audio_cached = cached
        return self._play()

    def _play(self) -> list[Command]:
        self.state = State.PLAYING
        self.pending = PlayAudio
        return [PlayAudio(self.session.audio_path)]

    def _on_playback_finished(self, error: str | None) -> list[Command]:
        if error:
            self.error = error
        if self._replay_returns_to_result:
            self._replay_returns_to_result = False
            self.state = State.SHOWING_RESULT
            return []
        if self.session.started_at is None:
            self.session.started_at = self.clock()
        self.state = State.LISTENING
        return []

    def _submit(self) -> list[Command]:
        text = self.input_buffer.strip()
        if not text:
            return []
        if self.session is None or not self.session.sentence:
            self.error = "Nothing to grade yet. Press Ctrl+N to start a new round."
            return []
        now = self.clock()
        self.session.user_input = text
        self.session.ended_at = now
        if self.session.started_at is None:
            self.session.started_at = now
        self.session.duration_secs = (now - self.session.started_at).total_seconds()
        self.error = None
        self.state = State.GRADING
        self.pending = GradeDictation
        return [GradeDictation(self.session.sentence, text, self.session.config.feedback_language)]

    def _on_grade_ready(self, grade: Grade) -> list[Command]:
        self.session.attach_grade(grade)
        self.state = State.SHOWING_RESULT
        return [SaveSession(self.session)]

    def _fail(self, error: str, state: State) -> list[Command]:
        log.warning("Operation failed in %s: %s", self.state.value, error)
        self.error = error
        self.state = state
        return []

    def _replay(self) -> list[Command]:
        if self.session is None:
            self.error = "Nothing to replay yet. Press Ctrl+N to start a new round."
            return []
        self.error = None
        if self.session.audio_path is None:
            # synthesis failed earlier; ask for the audio again
            self.state = State.PLAYING
            return self._request_audio()
        self.session.replay_count += 1
        return self._play()

    # ── Settings draft ────────────────────────────────────────────────────

    def _open_settings(self) -> list[Command]:
        self.previous_state = self.state
        self.draft = self.settings.copy()
        self.settings_index = 0
        self.state = State.SETTINGS
        return []

    def _commit_settings(self) -> list[Command]:
        draft = self.draft.validate()
        for f in fields(Settings):
            setattr(self.settings, f.name, getattr(draft, f.name))
        self.draft = None
        log.info(
            "Settings committed - voice=%s level=%d topic=%s words=%d speed=%.1f",
            self.settings.voice, self.settings.level, self.settings.topic,
            self.settings.words, self.settings.speed,
        )
        return [PersistSettings(self.settings.copy())] + self._start_round()

    def _cancel_settings(self) -> list[Command]:
        self.draft = None
        self.state = self.previous_state
        return []

    # ── Keys ──────────────────────────────────────────────────────────────

    def _on_key(self, key: str) -> list[Command]:
        if key == CTRL_C or (key in ("q", "Q") and self.state not in (State.LISTENING, State.SETTINGS)):
            log.info("User requested quit (%s)", key)
            self.quitting = True
            return [Quit()]

        if self.state is State.WELCOME:
            if key == "?":
                return self._open_help()
            return self._start_round()
        if self.state is State.LISTENING:
            return self._on_listening_key(key)
        if self.state is State.SHOWING_RESULT:
            return self._on_result_key(key)
        if self.state is State.SETTINGS:
            return self._on_settings_key(key)
        if self.state is State.HELP:
            self.state = self.previous_state
            return []
        # Generating / Playing / Grading wait for their completion event
        return []

    def _on_listening_key(self, key: str) -> list[Command]:
        if key == ENTER:
            return self._submit()
        if key == CTRL_R:
            return self._replay()
        if key == CTRL_S:
            return self._open_settings()
        if key == CTRL_N:
            return self._start_round()
        if key == BACKSPACE:
            self.input_buffer = self.input_buffer[:-1]
        elif len(key) == 1 and key.isprintable() and len(self.input_buffer) < MAX_INPUT_LENGTH:
            self.input_buffer += key
        return []

    def _on_result_key(self, key: str) -> list[Command]:
        if key in ("n", "N", ENTER):
            return self._start_round()
        if key in ("r", "R"):
            if self.session is None or self.session.audio_path is None:
                return []
            self._replay_returns_to_result = True
            return self._play()
        if key in ("s", "S"):
            return self._open_settings()
        if key == "?":
            return self._open_help()
        return []

    def _on_settings_key(self, key: str) -> list[Command]:
        if key in (UP, "k"):
            self.settings_index = max(0, self.settings_index - 1)
        elif key in (DOWN, "j"):
            self.settings_index = min(len(SETTINGS_FIELDS) - 1, self.settings_index + 1)
        elif key in (LEFT, "h"):
            adjust_setting(self.draft, SETTINGS_FIELDS[self.settings_index], -1)
        elif key in (RIGHT, "l"):
            adjust_setting(self.draft, SETTINGS_FIELDS[self.settings_index], 1)
        elif key == ENTER:
            return self._commit_settings()
        elif key == ESC:
            return self._cancel_settings()
        return []

    def _open_help(self) -> list[Command]:
        self.previous_state = self.state
        self.state = State.HELP
        return []

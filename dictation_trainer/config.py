from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

log = logging.getLogger("dictation_trainer.config")

APP_NAME = "dictation_trainer"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    value = os.environ.get(env_var)
    if value:
        return Path(value) / APP_NAME
    return Path.home() / fallback / APP_NAME


CONFIG_PATH = _xdg_dir("XDG_CONFIG_HOME", ".config") / "config.json"

VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")
TOPICS = ("Business", "Travel", "Daily", "Technology", "Health")
LLM_PROVIDERS = ("openai", "anthropic", "ollama")
TTS_PROVIDERS = ("openai", "edge-tts", "elevenlabs")

MIN_LEVEL, MAX_LEVEL = 400, 990
MIN_WORDS, MAX_WORDS = 5, 30
MIN_SPEED, MAX_SPEED = 0.5, 2.0

DEFAULTS = {
    "voice": "alloy",
    "level": 700,
    "topic": "Business",
    "words": 15,
    "speed": 1.0,
    "no_cache": False,
    "debug": False,
    "feedback_language": "Japanese",
    "llm_provider": "openai",
    "llm_model": "gpt-4o-mini",
    "tts_provider": "openai",
    "tts_model": "tts-1",
    "ollama_url": "http://localhost:11434",
    "cache_dir": "",
    "data_dir": "",
}


@dataclass
class Settings:
    voice: str = DEFAULTS["voice"]
    level: int = DEFAULTS["level"]
    topic: str = DEFAULTS["topic"]
    words: int = DEFAULTS["words"]
    speed: float = DEFAULTS["speed"]
    no_cache: bool = DEFAULTS["no_cache"]
    debug: bool = DEFAULTS["debug"]
    feedback_language: str = DEFAULTS["feedback_language"]
    llm_provider: str = DEFAULTS["llm_provider"]
    llm_model: str = DEFAULTS["llm_model"]
    tts_provider: str = DEFAULTS["tts_provider"]
    tts_model: str = DEFAULTS["tts_model"]
    ollama_url: str = DEFAULTS["ollama_url"]
    cache_dir: str = DEFAULTS["cache_dir"]
    data_dir: str = DEFAULTS["data_dir"]

    @property
    def audio_cache_path(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return _xdg_dir("XDG_CACHE_HOME", ".cache") / "audio"

    @property
    def data_path(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return _xdg_dir("XDG_DATA_HOME", ".local/share")

    @property
    def history_path(self) -> Path:
        return self.data_path / "history.jsonl"

    @property
    def log_path(self) -> Path:
        return self.data_path / f"{APP_NAME}.log"

    def validate(self) -> Settings:
        """Replace every out-of-range field with its default, in place.

        Values are never clamped to the nearest bound: a level of 300 becomes
        700, not 400. Returns ``self`` so calls can be chained.
        """
        if self.voice not in VOICES:
            self.voice = DEFAULTS["voice"]
        if not _is_int(self.level) or not MIN_LEVEL <= self.level <= MAX_LEVEL:
            self.level = DEFAULTS["level"]
        if self.topic not in TOPICS:
            self.topic = DEFAULTS["topic"]
        if not _is_int(self.words) or not MIN_WORDS <= self.words <= MAX_WORDS:
            self.words = DEFAULTS["words"]
        if not _is_number(self.speed) or not MIN_SPEED <= self.speed <= MAX_SPEED:
            self.speed = DEFAULTS["speed"]
        else:
            self.speed = float(self.speed)
        self.no_cache = bool(self.no_cache)
        self.debug = bool(self.debug)
        if self.llm_provider not in LLM_PROVIDERS:
            self.llm_provider = DEFAULTS["llm_provider"]
        if self.tts_provider not in TTS_PROVIDERS:
            self.tts_provider = DEFAULTS["tts_provider"]
        if not isinstance(self.feedback_language, str) or not self.feedback_language.strip():
            self.feedback_language = DEFAULTS["feedback_language"]
        return self

    def copy(self) -> Settings:
        return replace(self)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, raw: dict) -> Settings:
        known = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in raw.items() if k in known}
        return cls(**filtered).validate()


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def load_settings(path: Path | None = None) -> Settings:
    path = path or CONFIG_PATH
    if path.exists():
        raw = json.loads(path.read_text())
        # Migrate: word_count/speech_speed -> words/speed
        if "word_count" in raw:
            raw.setdefault("words", raw.pop("word_count"))
        if "speech_speed" in raw:
            raw.setdefault("speed", raw.pop("speech_speed"))
        return Settings.from_dict(raw)
    log.info("No config at %s, using defaults", path)
    return Settings()


def save_settings(settings: Settings, path: Path | None = None) -> None:
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
    log.info("Saved settings to %s", path)

"""CLI entry point for dictation-trainer.

Usage:
  python -m dictation_trainer [practice] [--voice V] [--level N] [--topic T]
                              [--words N] [--speed X] [--no-cache] [--debug]
  python -m dictation_trainer stats [--days N]
  python -m dictation_trainer history [--limit N]
  python -m dictation_trainer cache
  python -m dictation_trainer clear-cache
  python -m dictation_trainer clear-history
  python -m dictation_trainer config
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from dictation_trainer.config import CONFIG_PATH, DEFAULTS, Settings, load_settings

console = Console()

COMMANDS = ("practice", "stats", "history", "cache", "clear-cache", "clear-history", "config")


def main():
    args = sys.argv[1:]
    if args and not args[0].startswith("-"):
        command, args = args[0], args[1:]
    else:
        command = "practice"

    if command == "practice":
        _practice(args)
    elif command == "stats":
        _stats(args)
    elif command == "history":
        _history(args)
    elif command == "cache":
        _cache()
    elif command == "clear-cache":
        _clear_cache()
    elif command == "clear-history":
        _clear_history()
    elif command == "config":
        _config()
    else:
        print(f"Unknown command: {command}")
        print(f"Commands: {', '.join(COMMANDS)}")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str) -> str:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _parse_number(args: list[str], name: str, default, kind=int):
    raw = _parse_flag(args, name, "")
    if not raw:
        return default
    try:
        return kind(raw)
    except ValueError:
        print(f"Invalid value for {name}: {raw}")
        sys.exit(1)


def _configure_logging(settings: Settings, log_file: Path | None = None) -> None:
    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    if log_file is not None:
        # the terminal belongs to the UI, so interactive runs log to a file
        log_file.parent.mkdir(parents=True, exist_ok=True)
        level = logging.DEBUG if settings.debug else logging.INFO
        logging.basicConfig(level=level, format=fmt, filename=str(log_file))
    else:
        level = logging.DEBUG if settings.debug else logging.WARNING
        logging.basicConfig(level=level, format=fmt)
    # Provider HTTP clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _load() -> Settings:
    try:
        return load_settings()
    except (OSError, ValueError) as e:
        print(f"Could not read {CONFIG_PATH}: {e}")
        sys.exit(1)


def _apply_flags(settings: Settings, args: list[str]) -> Settings:
    """Override practice fields for this run only; invalid values fall back to defaults."""
    settings.voice = _parse_flag(args, "--voice", settings.voice)
    settings.topic = _parse_flag(args, "--topic", settings.topic)
    settings.level = _parse_number(args, "--level", settings.level)
    settings.words = _parse_number(args, "--words", settings.words)
    settings.speed = _parse_number(args, "--speed", settings.speed, float)
    if "--no-cache" in args:
        settings.no_cache = True
    if "--debug" in args:
        settings.debug = True
    return settings.validate()


def _model_kwargs(settings: Settings, field: str, keyword: str = "model") -> dict:
    """The default model names are OpenAI's; other backends keep their own unless overridden."""
    value = getattr(settings, field)
    if value == DEFAULTS[field]:
        return {}
    return {keyword: value}


def _get_llm(settings: Settings):
    if settings.llm_provider == "ollama":
        from dictation_trainer.providers.llm_ollama import OllamaProvider
        return OllamaProvider(base_url=settings.ollama_url, **_model_kwargs(settings, "llm_model"))
    if settings.llm_provider == "anthropic":
        from dictation_trainer.providers.llm_anthropic import AnthropicProvider
        return AnthropicProvider(**_model_kwargs(settings, "llm_model"))
    if settings.llm_provider == "openai":
        from dictation_trainer.providers.llm_openai import OpenAIProvider
        return OpenAIProvider(model=settings.llm_model)
    print(f"Unknown LLM provider: {settings.llm_provider}")
    sys.exit(1)


def _get_tts(settings: Settings):
    if settings.tts_provider == "edge-tts":
        from dictation_trainer.providers.tts_edge import EdgeTTSProvider
        return EdgeTTSProvider()
    if settings.tts_provider == "elevenlabs":
        from dictation_trainer.providers.tts_elevenlabs import ElevenLabsProvider
        return ElevenLabsProvider(**_model_kwargs(settings, "tts_model", "model_id"))
    if settings.tts_provider == "openai":
        from dictation_trainer.providers.tts_openai import OpenAITTSProvider
        return OpenAITTSProvider(model=settings.tts_model)
    print(f"Unknown TTS provider: {settings.tts_provider}")
    sys.exit(1)


def _check_keys(settings: Settings) -> None:
    needs_openai = settings.llm_provider == "openai" or settings.tts_provider == "openai"
    if needs_openai and not os.environ.get("OPENAI_API_KEY"):
        print("OPENAI_API_KEY environment variable is required")
        sys.exit(1)
    if settings.llm_provider == "anthropic" and not os.environ.get("ANTHROPIC_API_KEY"):
        print("ANTHROPIC_API_KEY environment variable is required")
        sys.exit(1)


def _practice(args: list[str]):
    from dictation_trainer.audio import AudioCache
    from dictation_trainer.config import save_settings
    from dictation_trainer.dictation import DictationService
    from dictation_trainer.history import HistoryStore
    from dictation_trainer.player import AudioPlayer
    from dictation_trainer.session import SessionMachine
    from dictation_trainer.tui import DictationApp

    settings = _apply_flags(_load(), args)
    _configure_logging(settings, settings.log_path)
    _check_keys(settings)

    log = logging.getLogger("dictation_trainer")
    log.info(
        "Starting practice - voice=%s level=%d topic=%s words=%d speed=%.1f no_cache=%s",
        settings.voice, settings.level, settings.topic, settings.words,
        settings.speed, settings.no_cache,
    )

    player = AudioPlayer()
    if not player.available:
        console.print("[yellow]No audio player found. Install mpg123, ffmpeg or sox.[/yellow]")

    service = DictationService(_get_llm(settings), _get_tts(settings), AudioCache(settings.audio_cache_path))
    app = DictationApp(
        SessionMachine(settings),
        service,
        HistoryStore(settings.history_path),
        player,
        persist_settings=save_settings,
        console=console,
    )
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass
    console.print("Goodbye!")


def _stats(args: list[str]):
    from dictation_trainer.errors import DictationError
    from dictation_trainer.history import HistoryStore

    days = _parse_number(args, "--days", 30)
    settings = _load()
    _configure_logging(settings)
    try:
        stats = HistoryStore(settings.history_path).calculate_statistics(days)
    except DictationError as e:
        print(f"Could not read history: {e}")
        sys.exit(1)

    console.print(f"[bold]Dictation Trainer Stats[/bold] (last {days} days)")
    console.print(f"Sessions:        {stats.total_sessions}")
    console.print(f"Graded:          {stats.graded_sessions}")
    console.print(f"Average score:   {stats.average_score:.1f}")
    console.print(f"Average WER:     {stats.average_wer:.3f}")

    if stats.topic_breakdown:
        table = Table(title="By topic")
        table.add_column("Topic")
        table.add_column("Rounds", justify="right")
        table.add_column("Avg score", justify="right")
        table.add_column("Avg WER", justify="right")
        for topic, t in sorted(stats.topic_breakdown.items()):
            table.add_row(topic, str(t.count), f"{t.average_score:.1f}", f"{t.average_wer:.3f}")
        console.print(table)

    if stats.common_mistakes:
        table = Table(title="Common mistakes")
        table.add_column("Expected")
        table.add_column("Typed")
        table.add_column("Times", justify="right")
        for m in stats.common_mistakes:
            table.add_row(m.expected or "-", m.actual or "-", str(m.frequency))
        console.print(table)

    if stats.recent_progress:
        table = Table(title="Daily progress")
        table.add_column("Day")
        table.add_column("Rounds", justify="right")
        table.add_column("Avg score", justify="right")
        for d in stats.recent_progress:
            table.add_row(d.day.isoformat(), str(d.session_count), f"{d.average_score:.1f}")
        console.print(table)


def _history(args: list[str]):
    from dictation_trainer.errors import DictationError
    from dictation_trainer.history import HistoryStore

    limit = _parse_number(args, "--limit", 10)
    settings = _load()
    _configure_logging(settings)
    try:
        sessions = HistoryStore(settings.history_path).recent_sessions(limit)
    except DictationError as e:
        print(f"Could not read history: {e}")
        sys.exit(1)
    if not sessions:
        print("No sessions yet.")
        return

    table = Table()
    table.add_column("When")
    table.add_column("Topic")
    table.add_column("Level", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Sentence")
    for s in sessions:
        score = str(s.grade.score) if s.grade is not None else "-"
        table.add_row(
            s.created_at.astimezone().strftime("%Y-%m-%d %H:%M"),
            s.config.topic, str(s.config.level), score, s.sentence,
        )
    console.print(table)


def _cache():
    from dictation_trainer.audio import AudioCache
    from dictation_trainer.errors import DictationError

    settings = _load()
    _configure_logging(settings)
    try:
        size, count = AudioCache(settings.audio_cache_path).size()
    except DictationError as e:
        print(f"Could not read cache: {e}")
        sys.exit(1)
    print(f"Cache directory: {settings.audio_cache_path}")
    print(f"Files:           {count}")
    print(f"Size:            {size / (1024 * 1024):.2f} MB")


def _clear_cache():
    from dictation_trainer.audio import AudioCache
    from dictation_trainer.errors import DictationError

    settings = _load()
    _configure_logging(settings)
    try:
        AudioCache(settings.audio_cache_path).clear()
    except DictationError as e:
        print(f"Could not clear cache: {e}")
        sys.exit(1)
    print(f"Cleared audio cache at {settings.audio_cache_path}")


def _clear_history():
    from dictation_trainer.errors import DictationError
    from dictation_trainer.history import HistoryStore

    settings = _load()
    _configure_logging(settings)
    try:
        HistoryStore(settings.history_path).clear()
    except DictationError as e:
        print(f"Could not clear history: {e}")
        sys.exit(1)
    print(f"Cleared history at {settings.history_path}")


def _config():
    settings = _load()
    print(f"Config file: {CONFIG_PATH}")
    print(json.dumps(settings.to_dict(), indent=4))


if __name__ == "__main__":
    main()

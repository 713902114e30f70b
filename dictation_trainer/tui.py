"""Terminal event loop: keys and finished operations in, commands out."""
from __future__ import annotations

import asyncio
import logging
import os
import sys
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import readchar
from rich.console import Console
from rich.live import Live

from dictation_trainer.audio import AUDIO_SUFFIX
from dictation_trainer.errors import CacheIOError, DictationError
from dictation_trainer.session import (
    BACKSPACE,
    CTRL_C,
    CTRL_N,
    CTRL_R,
    CTRL_S,
    DOWN,
    ENTER,
    ESC,
    LEFT,
    RIGHT,
    UP,
    AudioFailed,
    AudioReady,
    Command,
    Event,
    GenerateAudio,
    GenerateSentence,
    GradeDictation,
    GradeFailed,
    GradeReady,
    KeyPressed,
    PersistSettings,
    PlayAudio,
    PlaybackFinished,
    Quit,
    RefreshStatistics,
    Resized,
    SaveSession,
    SentenceFailed,
    SentenceReady,
    SessionMachine,
    SessionSaved,
    SettingsPersisted,
    StatisticsReady,
    Tick,
)
from dictation_trainer.views import render

if TYPE_CHECKING:
    from dictation_trainer.config import Settings
    from dictation_trainer.dictation import DictationService
    from dictation_trainer.history import HistoryStore
    from dictation_trainer.player import AudioPlayer

log = logging.getLogger("dictation_trainer.tui")

TICK_SECONDS = 0.1

KEY_NAMES = {
    readchar.key.ENTER: ENTER,
    "\r": ENTER,
    "\n": ENTER,
    readchar.key.BACKSPACE: BACKSPACE,
    "\x08": BACKSPACE,
    readchar.key.ESC: ESC,
    readchar.key.UP: UP,
    readchar.key.DOWN: DOWN,
    readchar.key.LEFT: LEFT,
    readchar.key.RIGHT: RIGHT,
    readchar.key.CTRL_C: CTRL_C,
    readchar.key.CTRL_N: CTRL_N,
    readchar.key.CTRL_R: CTRL_R,
    readchar.key.CTRL_S: CTRL_S,
}


def normalize_key(raw: str) -> str:
    return KEY_NAMES.get(raw, raw)


def _describe(error: Exception) -> str:
    if isinstance(error, DictationError):
        return str(error)
    return f"{type(error).__name__}: {error}"


class _TerminalMode:
    """Restore the tty settings on exit; the key reader may die mid-read in raw mode."""

    def __init__(self):
        self._saved = None

    def __enter__(self):
        if sys.platform != "win32" and sys.stdin.isatty():
            import termios
            self._saved = termios.tcgetattr(sys.stdin.fileno())
        return self

    def __exit__(self, *exc):
        if self._saved is not None:
            import termios
            termios.tcsetattr(sys.stdin.fileno(), termios.TCSADRAIN, self._saved)


class DictationApp:
    def __init__(
        self,
        machine: SessionMachine,
        service: DictationService,
        history: HistoryStore,
        player: AudioPlayer,
        persist_settings: Callable[[Settings], None],
        console: Console | None = None,
    ):
        self.machine = machine
        self.service = service
        self.history = history
        self.player = player
        self.persist_settings = persist_settings
        self.console = console or Console()
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._cancel = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._temp_files: list[Path] = []

    # ── Event sources ─────────────────────────────────────────────────────

    def emit(self, event: Event) -> None:
        self._queue.put_nowait(event)

    def _read_keys(self) -> None:
        while True:
            try:
                raw = readchar.readkey()
            except KeyboardInterrupt:
                raw = readchar.key.CTRL_C
            key = normalize_key(raw)
            try:
                self._loop.call_soon_threadsafe(self.emit, KeyPressed(key))
            except RuntimeError:
                # loop already closed during shutdown
                return
            if key == CTRL_C:
                return

    async def _tick(self) -> None:
        size = self.console.size
        while True:
            await asyncio.sleep(TICK_SECONDS)
            if self.console.size != size:
                size = self.console.size
                self.emit(Resized(size.width, size.height))
            self.emit(Tick())

    # ── Main loop ─────────────────────────────────────────────────────────

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        size = self.console.size
        self.machine.handle(Resized(size.width, size.height))
        self.execute(RefreshStatistics())

        reader = threading.Thread(target=self._read_keys, name="key-reader", daemon=True)
        ticker = asyncio.create_task(self._tick())
        log.info("Dictation UI started")
        try:
            with _TerminalMode(), Live(
                render(self.machine), console=self.console, screen=True, auto_refresh=False,
            ) as live:
                reader.start()
                while not self.machine.quitting:
                    await self.process(await self._queue.get())
                    live.update(render(self.machine), refresh=True)
        finally:
            ticker.cancel()
            await self.shutdown()
        log.info("Dictation UI stopped")

    async def process(self, event: Event) -> None:
        for command in self.machine.handle(event):
            self.execute(command)

    async def shutdown(self) -> None:
        self._cancel.set()
        self.player.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        for path in self._temp_files:
            path.unlink(missing_ok=True)
        self._temp_files.clear()

    # ── Commands ──────────────────────────────────────────────────────────

    def execute(self, command: Command) -> None:
        if isinstance(command, GenerateSentence):
            self._spawn(self._generate_sentence(command))
        elif isinstance(command, GenerateAudio):
            self._spawn(self._generate_audio(command))
        elif isinstance(command, PlayAudio):
            self._spawn(self._play(command))
        elif isinstance(command, GradeDictation):
            self._spawn(self._grade(command))
        elif isinstance(command, SaveSession):
            self._save_session(command)
        elif isinstance(command, PersistSettings):
            self._persist_settings(command)
        elif isinstance(command, RefreshStatistics):
            self._refresh_statistics(command)
        elif isinstance(command, Quit):
            self._cancel.set()
            self.player.stop()
        else:
            raise TypeError(f"Unhandled command: {command!r}")

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _generate_sentence(self, cmd: GenerateSentence) -> None:
        try:
            sentence = await self.service.generate_sentence(
                cmd.topic, cmd.level, cmd.words, cancel=self._cancel,
            )
        except Exception as e:
            log.warning("Sentence generation failed: %s", e, exc_info=not isinstance(e, DictationError))
            self.emit(SentenceFailed(_describe(e)))
            return
        self.emit(SentenceReady(sentence))

    async def _generate_audio(self, cmd: GenerateAudio) -> None:
        try:
            result = await self.service.generate_audio(
                cmd.text, cmd.voice, cmd.speed, cancel=self._cancel, use_cache=cmd.use_cache,
            )
        except CacheIOError as e:
            if e.audio is None:
                self.emit(AudioFailed(str(e)))
                return
            log.warning("Audio not cached, playing from a temporary file: %s", e)
            try:
                path = self._write_temp_audio(e.audio)
            except OSError as temp_error:
                log.error("Failed to write temporary audio: %s", temp_error)
                self.emit(AudioFailed(str(e)))
                return
            self.emit(AudioReady(str(path), cached=False, warning=f"Audio not cached: {e}"))
            return
        except Exception as e:
            log.warning("Audio generation failed: %s", e, exc_info=not isinstance(e, DictationError))
            self.emit(AudioFailed(_describe(e)))
            return
        self.emit(AudioReady(str(result.path), result.cached))

    def _write_temp_audio(self, audio: bytes) -> Path:
        fd, name = tempfile.mkstemp(prefix="dictation_", suffix=AUDIO_SUFFIX)
        with os.fdopen(fd, "wb") as f:
            f.write(audio)
        path = Path(name)
        self._temp_files.append(path)
        return path

    async def _play(self, cmd: PlayAudio) -> None:
        try:
            await self.player.play(cmd.path)
        except Exception as e:
            log.warning("Playback failed: %s", e, exc_info=not isinstance(e, DictationError))
            self.emit(PlaybackFinished(_describe(e)))
            return
        self.emit(PlaybackFinished())

    async def _grade(self, cmd: GradeDictation) -> None:
        try:
            grade = await self.service.grade_dictation(
                cmd.reference, cmd.user_input, cancel=self._cancel, language=cmd.language,
            )
        except Exception as e:
            log.warning("Grading failed: %s", e, exc_info=not isinstance(e, DictationError))
            self.emit(GradeFailed(_describe(e)))
            return
        self.emit(GradeReady(grade))

    def _save_session(self, cmd: SaveSession) -> None:
        try:
            self.history.save_session(cmd.session)
        except DictationError as e:
            log.error("Failed to save session: %s", e)
            self.emit(SessionSaved(str(e)))
            return
        self.emit(SessionSaved())

    def _persist_settings(self, cmd: PersistSettings) -> None:
        try:
            self.persist_settings(cmd.settings)
        except OSError as e:
            log.error("Failed to save settings: %s", e)
            self.emit(SettingsPersisted(str(e)))
            return
        self.emit(SettingsPersisted())

    def _refresh_statistics(self, cmd: RefreshStatistics) -> None:
        try:
            stats = self.history.calculate_statistics(cmd.window_days)
        except DictationError as e:
            self.emit(StatisticsReady(None, str(e)))
            return
        self.emit(StatisticsReady(stats))

"""Play cached audio through whichever command-line player is installed."""
from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from pathlib import Path

from dictation_trainer.errors import PlaybackError

log = logging.getLogger("dictation_trainer.player")

# Tried in order on Linux and other POSIX systems.
POSIX_PLAYERS = [
    ("mpg123", ["-q"]),
    ("ffplay", ["-nodisp", "-autoexit", "-loglevel", "quiet"]),
    ("play", ["-q"]),
]


def find_player(platform: str = sys.platform) -> tuple[str, list[str]] | None:
    if platform == "darwin" and shutil.which("afplay"):
        return "afplay", []
    for command, args in POSIX_PLAYERS:
        if shutil.which(command):
            return command, list(args)
    return None


class AudioPlayer:
    def __init__(self, command: str | None = None, args: list[str] | None = None):
        if command is None:
            found = find_player()
            if found is not None:
                command, args = found
        self.command = command
        self.args = args or []
        self._proc: asyncio.subprocess.Process | None = None

    @property
    def available(self) -> bool:
        return self.command is not None

    async def play(self, path: Path | str) -> None:
        if self.command is None:
            raise PlaybackError("no audio player found. Please install mpg123, ffmpeg or sox")
        path = Path(path)
        if not path.is_file():
            raise PlaybackError(f"audio file not found: {path}")

        log.debug("Playing %s with %s", path.name, self.command)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                self.command, *self.args, str(path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PlaybackError(f"failed to start {self.command}: {e}") from e

        _, stderr = await self._proc.communicate()
        returncode = self._proc.returncode
        self._proc = None
        if returncode != 0:
            detail = stderr.decode(errors="replace").strip()[:200]
            raise PlaybackError(f"{self.command} exited with code {returncode}: {detail}")

    def stop(self) -> None:
        if self._proc is not None and self._proc.returncode is None:
            self._proc.terminate()

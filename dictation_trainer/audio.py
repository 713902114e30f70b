"""Content-addressed cache for synthesized speech."""
from __future__ import annotations

import hashlib
import logging
import os
import shutil
from pathlib import Path

from dictation_trainer.errors import CacheIOError, CacheMiss

log = logging.getLogger("dictation_trainer.cache")

AUDIO_SUFFIX = ".mp3"


def cache_key(text: str, voice: str, speed: float) -> str:
    """SHA-256 over ``text:voice:speed`` with speed fixed to two decimals."""
    data = f"{text}:{voice}:{speed:.2f}"
    return hashlib.sha256(data.encode()).hexdigest()


class AudioCache:
    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def key(self, text: str, voice: str, speed: float) -> str:
        return cache_key(text, voice, speed)

    def path(self, text: str, voice: str, speed: float) -> Path:
        return self.base_dir / f"{self.key(text, voice, speed)}{AUDIO_SUFFIX}"

    def exists(self, text: str, voice: str, speed: float) -> bool:
        return self.path(text, voice, speed).is_file()

    def save(self, text: str, voice: str, speed: float, data: bytes) -> Path:
        path = self.path(text, voice, speed)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"failed to create cache dir {path.parent}: {e}") from e
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise CacheIOError(f"failed to write cache file {path.name}: {e}") from e
        log.debug("Cached %d bytes at %s", len(data), path.name)
        return path

    def load(self, text: str, voice: str, speed: float) -> bytes:
        path = self.path(text, voice, speed)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise CacheMiss(f"no cached audio for key {path.stem}") from e
        except OSError as e:
            raise CacheIOError(f"failed to read cache file {path.name}: {e}") from e

    def clear(self) -> None:
        if not self.base_dir.exists():
            return
        try:
            shutil.rmtree(self.base_dir)
        except OSError as e:
            raise CacheIOError(f"failed to clear cache {self.base_dir}: {e}") from e
        log.info("Cleared audio cache %s", self.base_dir)

    def size(self) -> tuple[int, int]:
        """Return ``(total_bytes, entry_count)`` over cached audio files."""
        if not self.base_dir.exists():
            return 0, 0

        def _raise(err: OSError) -> None:
            raise err

        total = 0
        count = 0
        try:
            for root, _dirs, files in os.walk(self.base_dir, onerror=_raise):
                for name in files:
                    if name.endswith(AUDIO_SUFFIX):
                        total += os.path.getsize(os.path.join(root, name))
                        count += 1
        except OSError as e:
            raise CacheIOError(f"failed to scan cache {self.base_dir}: {e}") from e
        return total, count

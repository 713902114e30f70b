"""Exception hierarchy shared by the cache, history, orchestrator and UI."""
from __future__ import annotations


class DictationError(Exception):
    """Base class for every recoverable error the UI can display."""


class UpstreamError(DictationError):
    """A model or speech call failed (retries exhausted or non-retryable)."""


class UpstreamTransient(UpstreamError):
    """A single failed attempt that is worth retrying."""


class UpstreamTimeout(UpstreamError):
    """An upstream call exceeded its deadline."""


class Cancelled(DictationError):
    """The caller's cancellation signal fired."""


class CacheIOError(DictationError):
    """Reading, writing or clearing the audio cache failed.

    When a write fails after synthesis, ``audio`` holds the bytes that could
    not be stored so the caller can still play them.
    """

    def __init__(self, message: str, audio: bytes | None = None):
        super().__init__(message)
        self.audio = audio


class CacheMiss(DictationError):
    """No cached audio exists for the requested text/voice/speed."""


class HistoryIOError(DictationError):
    """The history log could not be read or written."""


class MalformedRecord(DictationError):
    """A history line could not be decoded into a session."""


class GradingParseError(DictationError):
    """The grading response was not the expected JSON document."""


class PlaybackError(DictationError):
    """No audio player is available or it exited with an error."""

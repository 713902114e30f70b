"""Tests for audio player discovery and playback errors."""
from __future__ import annotations

from unittest.mock import patch

import pytest

from dictation_trainer.errors import PlaybackError
from dictation_trainer.player import AudioPlayer, find_player


def _which(available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


class TestFindPlayer:
    def test_afplay_on_macos(self):
        with patch("dictation_trainer.player.shutil.which", _which({"afplay", "mpg123"})):
            assert find_player("darwin") == ("afplay", [])

    def test_mpg123_preferred_on_linux(self):
        with patch("dictation_trainer.player.shutil.which", _which({"afplay", "mpg123", "ffplay"})):
            assert find_player("linux") == ("mpg123", ["-q"])

    def test_falls_back_to_ffplay(self):
        with patch("dictation_trainer.player.shutil.which", _which({"ffplay", "play"})):
            command, args = find_player("linux")
        assert command == "ffplay"
        assert "-autoexit" in args

    def test_sox_play(self):
        with patch("dictation_trainer.player.shutil.which", _which({"play"})):
            assert find_player("linux") == ("play", ["-q"])

    def test_nothing_installed(self):
        with patch("dictation_trainer.player.shutil.which", _which(set())):
            assert find_player("linux") is None


class TestAudioPlayer:
    def test_unavailable_without_player(self):
        with patch("dictation_trainer.player.find_player", return_value=None):
            player = AudioPlayer()
        assert not player.available

    @pytest.mark.asyncio
    async def test_play_without_player_raises(self, tmp_path):
        with patch("dictation_trainer.player.find_player", return_value=None):
            player = AudioPlayer()
        audio = tmp_path / "a.mp3"
        audio.write_bytes(b"x")
        with pytest.raises(PlaybackError):
            await player.play(audio)

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, tmp_path):
        player = AudioPlayer(command="true")
        with pytest.raises(PlaybackError):
            await player.play(tmp_path / "missing.mp3")

    @pytest.mark.asyncio
    async def test_missing_command_raises(self, tmp_path):
        audio = tmp_path / "a.mp3"
        audio.write_bytes(b"x")
        player = AudioPlayer(command="definitely-not-a-real-player-binary")
        with pytest.raises(PlaybackError):
            await player.play(audio)

    def test_stop_when_idle(self):
        AudioPlayer(command="true").stop()

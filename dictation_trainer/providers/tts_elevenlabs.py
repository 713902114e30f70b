from __future__ import annotations

import asyncio
import os

from dictation_trainer.providers.base import TTSProvider

# Premade ElevenLabs voices standing in for the six voice names in Settings.
ELEVENLABS_VOICES = {
    "alloy": "21m00Tcm4TlvDq8ikWAM",
    "echo": "ErXwobaYiN019PkySvjV",
    "fable": "EXAVITQu4vr4xnSDxMaL",
    "onyx": "pNInz6obpgDQGcFmaJgB",
    "nova": "AZnzlk1XvdvUeBnXmlld",
    "shimmer": "MF3mGyEYCl7XYWbV9V6O",
}

# ElevenLabs accepts a narrower speed range than the app does.
MIN_SPEED, MAX_SPEED = 0.7, 1.2


class ElevenLabsProvider(TTSProvider):
    def __init__(self, model_id: str = "eleven_flash_v2_5"):
        from elevenlabs import ElevenLabs
        self.client = ElevenLabs(
            api_key=os.environ.get("ELEVEN_LABS_API_KEY", ""),
        )
        self.model_id = model_id

    async def synthesize(self, text: str, voice: str, speed: float) -> bytes:
        from elevenlabs.types import VoiceSettings

        voice_id = ELEVENLABS_VOICES.get(voice, ELEVENLABS_VOICES["alloy"])

        def _generate() -> bytes:
            audio = self.client.text_to_speech.convert(
                voice_id=voice_id,
                text=text,
                model_id=self.model_id,
                output_format="mp3_44100_128",
                voice_settings=VoiceSettings(
                    stability=0.5,
                    similarity_boost=0.75,
                    style=0.3,
                    speed=min(MAX_SPEED, max(MIN_SPEED, speed)),
                ),
            )
            # audio is a generator of bytes
            return b"".join(audio)

        return await asyncio.get_running_loop().run_in_executor(None, _generate)

    def name(self) -> str:
        return f"elevenlabs/{self.model_id}"

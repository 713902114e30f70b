from __future__ import annotations

import os

from dictation_trainer.providers.base import TTSProvider


class OpenAITTSProvider(TTSProvider):
    def __init__(self, model: str = "tts-1"):
        import openai
        self.client = openai.AsyncOpenAI(
            api_key=os.environ.get("OPENAI_API_KEY", ""),
        )
        self.model = model

    async def synthesize(self, text: str, voice: str, speed: float) -> bytes:
        response = await self.client.audio.speech.create(
            model=self.model,
            voice=voice,
            input=text,
            speed=speed,
            response_format="mp3",
        )
        return response.content

    def name(self) -> str:
        return f"openai/{self.model}"

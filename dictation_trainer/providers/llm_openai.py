from __future__ import annotations

import logging
import os
import time

from dictation_trainer.providers.base import LLMProvider

log = logging.getLogger("dictation_trainer.llm")


class OpenAIProvider(LLMProvider):
    def __init__(self, model: str = "gpt-4o-mini"):
        import openai
        self.client = openai.AsyncOpenAI(
            api_key=os.environ.get("OPENAI_API_KEY", ""),
        )
        self.model = model

    async def generate(self, prompt: str, temperature: float = 0.7, system: str | None = None) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        t0 = time.monotonic()
        resp = await self.client.chat.completions.create(
            model=self.model,
            temperature=temperature,
            messages=messages,
        )
        text = resp.choices[0].message.content or ""
        log.debug("%s replied in %.1fs (%d chars)", self.name(), time.monotonic() - t0, len(text))
        return text

    def name(self) -> str:
        return f"openai/{self.model}"

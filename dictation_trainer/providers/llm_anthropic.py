from __future__ import annotations

import logging
import os
import time

from dictation_trainer.providers.base import LLMProvider

log = logging.getLogger("dictation_trainer.llm")


class AnthropicProvider(LLMProvider):
    def __init__(self, model: str = "claude-sonnet-4-20250514", max_tokens: int = 1024):
        import anthropic
        self.client = anthropic.AsyncAnthropic(
            api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
        )
        self.model = model
        self.max_tokens = max_tokens

    async def generate(self, prompt: str, temperature: float = 0.7, system: str | None = None) -> str:
        kwargs = {"system": system} if system else {}
        t0 = time.monotonic()
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        # Only text blocks carry the reply
        text = "".join(block.text for block in message.content if block.type == "text")
        log.debug("%s replied in %.1fs (%d chars)", self.name(), time.monotonic() - t0, len(text))
        return text

    def name(self) -> str:
        return f"anthropic/{self.model}"

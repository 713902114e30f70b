from __future__ import annotations

from dictation_trainer.providers.base import TTSProvider

# Closest Edge neural voice for each of the six voice names in Settings.
EDGE_VOICES = {
    "alloy": "en-US-AriaNeural",
    "echo": "en-US-GuyNeural",
    "fable": "en-GB-SoniaNeural",
    "onyx": "en-US-ChristopherNeural",
    "nova": "en-US-JennyNeural",
    "shimmer": "en-US-MichelleNeural",
}


def edge_rate(speed: float) -> str:
    """1.0 -> "+0%", 1.5 -> "+50%", 0.5 -> "-50%"."""
    return f"{round((speed - 1.0) * 100):+d}%"


class EdgeTTSProvider(TTSProvider):
    async def synthesize(self, text: str, voice: str, speed: float) -> bytes:
        import edge_tts

        communicate = edge_tts.Communicate(
            text,
            EDGE_VOICES.get(voice, EDGE_VOICES["alloy"]),
            rate=edge_rate(speed),
        )
        audio = bytearray()
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                audio.extend(chunk["data"])
        return bytes(audio)

    def name(self) -> str:
        return "edge-tts"

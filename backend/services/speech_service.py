import base64
import logging

from services.replicate_service import ReplicateService
from utils.env import settings
from utils.errors import InputValidationError
from utils.model_output import extract_url

logger = logging.getLogger("speech_service")


class SpeechService:
    def __init__(self, replicate_service: ReplicateService):
        self.replicate_service = replicate_service

    async def synthesize(self, text: str, voice: str | None = None) -> str:
        """Speak `text` and return the URL of the generated audio."""
        if not (text or "").strip():
            raise InputValidationError("Text is required")
        voice_id = voice or settings.DEFAULT_VOICE
        logger.info(f"Generating speech ({len(text)} chars) with voice {voice_id}")
        output = await self.replicate_service.run(
            settings.SPEECH_MODEL,
            {
                "text": text,
                "voice_id": voice_id,
                "speed": 1.0,
                "volume": 1.0,
                "pitch": 0,
                "sample_rate": 32000,
                "bitrate": 128000,
                "channel": "mono",
                "english_normalization": True,
            },
        )
        return extract_url(output, settings.SPEECH_MODEL)

    async def synthesize_base64(self, text: str, voice: str | None = None) -> str:
        audio_url = await self.synthesize(text, voice)
        audio = await self.replicate_service.fetch_bytes(audio_url)
        logger.info(f"Speech generated ({len(audio)} bytes)")
        return base64.b64encode(audio).decode("ascii")

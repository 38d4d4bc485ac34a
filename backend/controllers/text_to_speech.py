import logging

from blacksheep import Request, Response, json
from blacksheep.server.controllers import APIController, post

from services.speech_service import SpeechService

logger = logging.getLogger("text_to_speech_controller")


class TextToSpeech(APIController):
    def __init__(self, speech_service: SpeechService):
        self.speech_service = speech_service

    @classmethod
    def route(cls):
        return "/api"

    @post("/text-to-speech")
    async def speak(self, request: Request) -> Response:
        try:
            data = await request.json()
        except Exception:
            return json({"error": "Invalid JSON body"}, status=400)
        data = data if isinstance(data, dict) else {}

        text = (data.get("text") or "").strip()
        if not text:
            return json({"error": "Text is required"}, status=400)

        try:
            audio_content = await self.speech_service.synthesize_base64(text, data.get("voice") or None)
        except Exception as exc:
            logger.exception(f"Error in text-to-speech: {exc}")
            return json({"error": str(exc)}, status=500)

        return json({"audioContent": audio_content})

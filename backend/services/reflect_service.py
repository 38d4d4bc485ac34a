import logging

from models.job import ReflectRequest, Reflection
from services.replicate_service import ReplicateService
from utils.env import settings
from utils.images import parse_image_data_uri
from utils.reflect_prompt_builder import (
    CAPTION_PROMPT,
    FALLBACK_MESSAGE,
    clean_caption,
    create_message_prompt,
    detect_mood,
    join_model_text,
    normalize_message,
)

logger = logging.getLogger("reflect_service")


class ReflectService:
    def __init__(self, replicate_service: ReplicateService):
        self.replicate_service = replicate_service

    def validate(self, request: ReflectRequest) -> None:
        """Reject bad input and missing config before any model is called."""
        parse_image_data_uri(request.image)
        self.replicate_service.ensure_configured()

    async def describe(self, image: str) -> str:
        output = await self.replicate_service.run(
            settings.CAPTION_MODEL,
            {"image": image, "prompt": CAPTION_PROMPT, "max_tokens": 100},
        )
        return clean_caption(join_model_text(output))

    async def write_line(self, caption: str, tone: str, intensity) -> str:
        output = await self.replicate_service.run(
            settings.MESSAGE_MODEL,
            {
                "prompt": create_message_prompt(caption, tone, intensity),
                "temperature": 0.2,
                "max_tokens": 60,
                "top_p": 0.9,
            },
        )
        return normalize_message(join_model_text(output))

    async def reflect(self, request: ReflectRequest) -> Reflection:
        self.validate(request)
        logger.info(f"Reflecting with tone={request.tone}, intensity={request.intensity}")

        # Content generation never fails the request: a canned line beats an error.
        try:
            caption = await self.describe(request.image)
            logger.info(f"Caption generated: {caption}")
            message = await self.write_line(caption, request.tone, request.intensity)
            if not message:
                raise ValueError("text model returned an empty line")
        except Exception as exc:
            logger.exception(f"Reflect pipeline failed, using fallback message: {exc}")
            return Reflection(message=FALLBACK_MESSAGE, mood="neutral", error=str(exc))

        mood = detect_mood(caption)
        logger.info(f"Generated message ({mood}): {message}")
        return Reflection(message=message, mood=mood)

import logging

from blacksheep import Request, Response, json
from blacksheep.server.controllers import APIController, post

from models.job import ReactionJobRequest
from services.job_service import JobService
from utils.errors import ConfigurationError, InputValidationError

logger = logging.getLogger("reaction_video_controller")


class ReactionVideo(APIController):
    def __init__(self, job_service: JobService):
        self.job_service = job_service

    @classmethod
    def route(cls):
        return "/api"

    @post("/reaction-video")
    async def create_job(self, request: Request) -> Response:
        try:
            data = await request.json()
        except Exception:
            return json({"error": "Invalid JSON body"}, status=400)
        data = data if isinstance(data, dict) else {}

        job_request = ReactionJobRequest(
            image=data.get("imageBase64") or "",
            line=(data.get("line") or "").strip(),
            mood=data.get("mood") or "neutral",
            mode=data.get("mode") or "seedance",
            voice=data.get("voice") or None,
            supersedes=data.get("supersedes") or None,
        )
        try:
            handle = await self.job_service.start_job(job_request)
        except InputValidationError as exc:
            logger.warning(f"/reaction-video rejected: {exc}")
            return json({"error": str(exc)}, status=400)
        except ConfigurationError as exc:
            logger.error(f"/reaction-video misconfigured: {exc}")
            return json({"error": str(exc)}, status=500)

        return json({"jobId": handle.job_id})

import logging

from blacksheep import Request, Response, json
from blacksheep.server.controllers import APIController, post

from models.job import ReflectRequest
from services.reflect_service import ReflectService
from utils.errors import ConfigurationError, InputValidationError

logger = logging.getLogger("reflect_controller")


class Reflect(APIController):
    def __init__(self, reflect_service: ReflectService):
        self.reflect_service = reflect_service

    @classmethod
    def route(cls):
        return "/api"

    @post("/reflect")
    async def reflect(self, request: Request) -> Response:
        try:
            data = await request.json()
        except Exception:
            return json({"error": "Invalid JSON body"}, status=400)
        data = data if isinstance(data, dict) else {}

        reflect_request = ReflectRequest(
            image=data.get("imageBase64") or "",
            tone=data.get("tone") or "coach",
            intensity=data.get("intensity", 1),
        )
        try:
            reflection = await self.reflect_service.reflect(reflect_request)
        except InputValidationError as exc:
            logger.warning(f"/reflect rejected: {exc}")
            return json({"error": str(exc)}, status=400)
        except ConfigurationError as exc:
            logger.error(f"/reflect misconfigured: {exc}")
            return json({"error": str(exc)}, status=500)

        return json(reflection.to_response())

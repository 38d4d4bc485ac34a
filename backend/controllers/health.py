from blacksheep import json
from blacksheep.server.controllers import APIController, get


class Health(APIController):
    @classmethod
    def route(cls):
        return "/api"

    @get("/health")
    async def health_check(self):
        return json({"status": "ok"})

import logging

from blacksheep import Request, Response, json
from blacksheep.server.controllers import APIController, get, post

from services.job_store import JobStore

logger = logging.getLogger("job_status_controller")


class JobStatus(APIController):
    def __init__(self, job_store: JobStore):
        self.job_store = job_store

    @classmethod
    def route(cls):
        return "/api"

    async def _status_response(self, job_id: str | None) -> Response:
        if not job_id:
            return json({"error": "jobId parameter required"}, status=400)

        try:
            job = await self.job_store.get(job_id)
        except Exception as exc:
            logger.exception(f"Failed to load job {job_id}: {exc}")
            return json({"error": str(exc)}, status=500)

        if job is None:
            logger.warning(f"Job {job_id} not found")
            return json({"status": "not_found"}, status=404)

        logger.debug(f"Job {job_id} status response: status={job.status}")
        return json(job.to_response())

    @get("/job-status")
    async def get_status(self, request: Request) -> Response:
        job_ids = request.query.get("jobId") or []
        return await self._status_response(job_ids[0] if job_ids else None)

    @post("/job-status")
    async def post_status(self, request: Request) -> Response:
        job_ids = request.query.get("jobId") or []
        job_id = job_ids[0] if job_ids else None
        if not job_id:
            try:
                data = await request.json()
            except Exception:
                data = None
            job_id = data.get("jobId") if isinstance(data, dict) else None
        return await self._status_response(job_id)

import base64
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger("mirror_api")


class MirrorApiError(Exception):
    def __init__(self, message: str, status: int | None = None, body: dict | None = None):
        super().__init__(message)
        self.status = status
        self.body = body or {}


class MirrorApi:
    """Thin aiohttp client for the mirror backend."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close_session(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "MirrorApi":
        await self.ensure_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close_session()

    async def _call(self, method: str, path: str, payload: dict | None = None, params: dict | None = None) -> dict:
        await self.ensure_session()
        assert self._session is not None
        url = f"{self.base_url}{path}"
        async with self._session.request(method, url, json=payload, params=params) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            if response.status >= 400:
                raise MirrorApiError(
                    body.get("error") or f"{method} {path} failed with HTTP {response.status}",
                    status=response.status,
                    body=body,
                )
            return body

    async def reflect(self, image: str, intensity: int = 1, tone: str = "coach") -> dict:
        return await self._call(
            "POST", "/api/reflect",
            {"imageBase64": image, "intensity": intensity, "tone": tone},
        )

    async def start_reaction_video(
        self,
        image: str,
        line: str,
        mood: str = "neutral",
        mode: str = "seedance",
        supersedes: Optional[str] = None,
    ) -> str:
        payload = {"imageBase64": image, "line": line, "mood": mood, "mode": mode}
        if supersedes:
            payload["supersedes"] = supersedes
        data = await self._call("POST", "/api/reaction-video", payload)
        job_id = data.get("jobId")
        if not job_id:
            raise MirrorApiError("reaction-video returned no jobId", body=data)
        return job_id

    async def get_job_status(self, job_id: str) -> dict:
        try:
            return await self._call("GET", "/api/job-status", params={"jobId": job_id})
        except MirrorApiError as exc:
            if exc.status == 404:
                return {"status": "not_found"}
            raise

    async def text_to_speech(self, text: str, voice: Optional[str] = None) -> bytes:
        payload = {"text": text}
        if voice:
            payload["voice"] = voice
        data = await self._call("POST", "/api/text-to-speech", payload)
        return base64.b64decode(data.get("audioContent") or "")

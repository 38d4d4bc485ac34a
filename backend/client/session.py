import asyncio
import logging
from dataclasses import dataclass, field
from typing import Literal, Optional

import aiohttp

from client.api import MirrorApi, MirrorApiError

logger = logging.getLogger("mirror_session")

PollOutcome = Literal["succeeded", "failed", "timeout", "cancelled"]

POLL_INTERVAL_SECONDS = 2.0
MAX_POLL_ATTEMPTS = 30
VIDEO_FAILED_NOTICE = "Could not generate reaction clip"
REFLECT_FAILED_NOTICE = "Something went wrong. Try again?"
AUDIO_FAILED_NOTICE = "Could not generate speech for the message"

_TRANSPORT_ERRORS = (MirrorApiError, aiohttp.ClientError, asyncio.TimeoutError)


@dataclass
class MirrorState:
    message: Optional[str] = None
    mood: str = "neutral"
    is_processing: bool = False
    is_video_pending: bool = False
    job_id: Optional[str] = None
    reaction_url: Optional[str] = None
    audio: Optional[bytes] = None
    notices: list[str] = field(default_factory=list)


class MirrorSession:
    """Drives one mirror screen: capture, reflect, then poll for the clip.

    Every capture bumps a generation counter and cancels the previous
    capture's background tasks, so a stale poll loop can never write over
    the state of a newer capture.
    """

    def __init__(
        self,
        api: MirrorApi,
        intensity: int = 1,
        tone: str = "coach",
        mode: str = "seedance",
        voice: Optional[str] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
    ) -> None:
        self.api = api
        self.intensity = intensity
        self.tone = tone
        self.mode = mode
        self.voice = voice
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.state = MirrorState()
        self._generation = 0
        self._tasks: list[asyncio.Task] = []
        self._job_request: Optional[asyncio.Task] = None

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _invalidate(self) -> int:
        self._generation += 1
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks = []
        return self._generation

    async def handle_capture(self, image: str) -> bool:
        previous_job_id = self.state.job_id if self.state.is_video_pending else None
        previous_request = None
        if self.state.is_video_pending and previous_job_id is None:
            previous_request = self._job_request
        generation = self._invalidate()
        self.state = MirrorState(is_processing=True)

        try:
            data = await self.api.reflect(image, intensity=self.intensity, tone=self.tone)
        except _TRANSPORT_ERRORS as exc:
            logger.error(f"Error calling reflect: {exc}")
            if self._is_current(generation):
                self.state.notices.append(REFLECT_FAILED_NOTICE)
            return False
        finally:
            if self._is_current(generation):
                self.state.is_processing = False

        if not self._is_current(generation):
            return False

        self.state.message = data.get("message")
        self.state.mood = data.get("mood") or "neutral"
        if data.get("error"):
            logger.info(f"reflect fell back to a canned line: {data['error']}")
        if not self.state.message:
            return False

        self._tasks = [
            asyncio.create_task(self.generate_audio(self.state.message, generation)),
            asyncio.create_task(
                self.start_video_generation(
                    image, self.state.message, self.state.mood, generation,
                    supersedes=previous_job_id, previous_request=previous_request,
                )
            ),
        ]
        return True

    async def wait(self) -> None:
        """Wait for the current capture's background work to settle."""
        tasks = list(self._tasks)
        if tasks:
            await asyncio.wait(tasks)

    async def close(self) -> None:
        tasks = list(self._tasks)
        self._invalidate()
        if self._job_request is not None and not self._job_request.done():
            self._job_request.cancel()
            tasks.append(self._job_request)
        if tasks:
            await asyncio.wait(tasks)

    async def generate_audio(self, text: str, generation: int) -> None:
        try:
            audio = await self.api.text_to_speech(text, self.voice)
        except _TRANSPORT_ERRORS as exc:
            logger.error(f"Error generating audio: {exc}")
            if self._is_current(generation):
                self.state.notices.append(AUDIO_FAILED_NOTICE)
            return
        if self._is_current(generation):
            self.state.audio = audio

    async def start_video_generation(
        self,
        image: str,
        line: str,
        mood: str,
        generation: int,
        supersedes: Optional[str] = None,
        previous_request: Optional[asyncio.Task] = None,
    ) -> PollOutcome:
        self.state.is_video_pending = True
        request = asyncio.create_task(
            self._request_job(image, line, mood, supersedes, previous_request)
        )
        self._job_request = request
        try:
            # shielded: a newer capture may still need this job's id to supersede it
            job_id = await asyncio.shield(request)
        except _TRANSPORT_ERRORS as exc:
            logger.error(f"Error starting video generation: {exc}")
            if self._is_current(generation):
                self.state.is_video_pending = False
            return "failed"

        if not self._is_current(generation):
            return "cancelled"
        self.state.job_id = job_id
        return await self.poll_job(job_id, generation)

    async def _request_job(
        self,
        image: str,
        line: str,
        mood: str,
        supersedes: Optional[str],
        previous_request: Optional[asyncio.Task],
    ) -> str:
        if supersedes is None and previous_request is not None:
            try:
                supersedes = await previous_request
            except _TRANSPORT_ERRORS:
                supersedes = None
        return await self.api.start_reaction_video(
            image, line, mood=mood, mode=self.mode, supersedes=supersedes,
        )

    async def poll_job(self, job_id: str, generation: int) -> PollOutcome:
        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            if not self._is_current(generation):
                return "cancelled"

            try:
                status = await self.api.get_job_status(job_id)
            except _TRANSPORT_ERRORS as exc:
                logger.warning(f"Error checking job status (attempt {attempt}): {exc}")
                continue

            if not self._is_current(generation):
                return "cancelled"

            if status.get("status") == "succeeded" and status.get("videoUrl"):
                self.state.reaction_url = status["videoUrl"]
                self.state.is_video_pending = False
                return "succeeded"

            if status.get("status") == "failed":
                logger.error(f"Video generation failed: {status.get('error')}")
                self.state.is_video_pending = False
                self.state.notices.append(status.get("error") or VIDEO_FAILED_NOTICE)
                return "failed"

        logger.info(f"Gave up on job {job_id} after {self.max_attempts} attempts")
        if self._is_current(generation):
            self.state.is_video_pending = False
        return "timeout"

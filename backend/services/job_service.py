import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable

from models.job import ReactionJobRequest
from services.job_store import JobStore
from services.replicate_service import ReplicateService
from services.speech_service import SpeechService
from utils.env import settings
from utils.errors import (
    InputValidationError,
    InvalidTransitionError,
    ModelInvocationError,
    StageTimeoutError,
)
from utils.images import parse_image_data_uri
from utils.model_output import extract_url
from utils.reaction_prompt_builder import (
    create_avatar_prompt,
    create_reaction_prompt,
    normalize_mode,
)

logger = logging.getLogger("job_service")

CANCELLED_ERROR = "Job was cancelled"


@dataclass
class JobHandle:
    job_id: str
    task: asyncio.Task

    def cancel(self) -> bool:
        return self.task.cancel()


class JobService:
    def __init__(
        self,
        replicate_service: ReplicateService,
        job_store: JobStore,
        speech_service: SpeechService,
    ):
        logger.info("Initializing JobService...")
        self.replicate_service = replicate_service
        self.job_store = job_store
        self.speech_service = speech_service
        self.tasks: dict[str, asyncio.Task] = {}

    def validate(self, request: ReactionJobRequest) -> None:
        parse_image_data_uri(request.image)
        if not (request.line or "").strip():
            raise InputValidationError("Invalid input: imageBase64 and line required")
        self.replicate_service.ensure_configured()

    async def start_job(self, request: ReactionJobRequest) -> JobHandle:
        """Accept a job and return at once; the pipeline runs in its own task."""
        self.validate(request)

        job_id = str(uuid.uuid4())
        mode = normalize_mode(request.mode)
        await self.job_store.create(job_id, mode=mode)

        if request.supersedes:
            await self.cancel(request.supersedes)

        task = asyncio.create_task(self._run_job(job_id, request))
        self.tasks[job_id] = task
        task.add_done_callback(lambda done: self._forget_task(job_id, done))
        logger.info(f"[{job_id[:8]}] accepted (mode={mode}) - pipeline starting in background")
        return JobHandle(job_id=job_id, task=task)

    def _forget_task(self, job_id: str, task: asyncio.Task) -> None:
        self.tasks.pop(job_id, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[{job_id[:8]}] job task crashed: {task.exception()!r}")

    async def cancel(self, job_id: str) -> bool:
        task = self.tasks.get(job_id)
        if task is None or task.done():
            return False
        logger.info(f"[{job_id[:8]}] cancelling superseded job")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # a task cancelled before its first step never ran _run_job
        await self._record_cancelled(job_id)
        return True

    async def _record_cancelled(self, job_id: str) -> None:
        job = await self.job_store.get(job_id)
        if job is None or job.is_terminal:
            return
        if job.status == "queued":
            await self.job_store.update(job_id, "running")
        await self._record_failure(job_id, CANCELLED_ERROR)

    async def _run_job(self, job_id: str, request: ReactionJobRequest) -> None:
        try:
            await self.process(job_id, request)
        except asyncio.CancelledError:
            await self._record_cancelled(job_id)
            raise

    async def process(self, job_id: str, request: ReactionJobRequest, allow_retry: bool = True) -> None:
        jid = job_id[:8]
        try:
            await self.job_store.update(job_id, "running")
            video_url = await self._run_pipeline(job_id, request)
        except ModelInvocationError as exc:
            if allow_retry and exc.is_capacity_error:
                logger.warning(
                    f"[{jid}] model at capacity, retrying once in {settings.RETRY_BACKOFF_SECONDS}s: {exc}"
                )
            else:
                logger.error(f"[{jid}] model call failed: {exc}")
                await self._record_failure(job_id, str(exc))
                return
        except Exception as exc:
            logger.exception(f"[{jid}] pipeline failed: {exc}")
            await self._record_failure(job_id, str(exc) or type(exc).__name__)
            return
        else:
            try:
                await self.job_store.update(job_id, "succeeded", video_url=video_url)
            except Exception as exc:
                logger.exception(f"[{jid}] could not record result: {exc}")
                await self._record_failure(job_id, f"Could not record result: {exc}")
                return
            logger.info(f"[{jid}] video ready: {video_url}")
            return

        await asyncio.sleep(settings.RETRY_BACKOFF_SECONDS)
        await self.process(job_id, request, allow_retry=False)

    async def _record_failure(self, job_id: str, error: str) -> None:
        try:
            await self.job_store.update(job_id, "failed", error=error)
        except InvalidTransitionError as exc:
            # the job already reached a terminal state; keep what is recorded
            logger.warning(f"[{job_id[:8]}] could not record failure: {exc}")

    async def _stage(self, job_id: str, name: str, call: Awaitable[Any]) -> Any:
        logger.info(f"[{job_id[:8]}] stage {name} started")
        try:
            return await asyncio.wait_for(call, timeout=settings.STAGE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError as exc:
            raise StageTimeoutError(
                f"{name} did not finish within {settings.STAGE_TIMEOUT_SECONDS:g}s"
            ) from exc

    async def _run_pipeline(self, job_id: str, request: ReactionJobRequest) -> str:
        mode = normalize_mode(request.mode)
        if mode == "avatar":
            return await self._run_avatar(job_id, request)
        return await self._run_seedance(job_id, request)

    async def _run_seedance(self, job_id: str, request: ReactionJobRequest) -> str:
        #  image + caption -> video
        output = await self._stage(
            job_id,
            "video",
            self.replicate_service.run(
                settings.VIDEO_MODEL,
                {
                    "prompt": create_reaction_prompt(request.line, request.mood),
                    "image": request.image,
                    "mode": "i2v",
                    "duration": 5,
                    "resolution": "720p",
                    "aspect_ratio": "9:16",
                    "seed": 42,
                },
            ),
        )
        return extract_url(output, settings.VIDEO_MODEL)

    async def _run_avatar(self, job_id: str, request: ReactionJobRequest) -> str:
        #  line -> speech, then image + speech -> talking video
        audio_url = await self._stage(
            job_id,
            "speech",
            self.speech_service.synthesize(request.line, request.voice),
        )
        logger.info(f"[{job_id[:8]}] speech ready: {audio_url}")
        output = await self._stage(
            job_id,
            "avatar",
            self.replicate_service.run(
                settings.AVATAR_MODEL,
                {
                    "image": request.image,
                    "audio": audio_url,
                    "prompt": create_avatar_prompt(request.line, request.mood),
                },
            ),
        )
        return extract_url(output, settings.AVATAR_MODEL)

import asyncio

import pytest

from conftest import FakeReplicateService, RecordingJobStore, hang_forever
from models.job import ReactionJobRequest
from services.job_service import CANCELLED_ERROR, JobService
from services.speech_service import SpeechService
from utils.env import settings
from utils.errors import ConfigurationError, InputValidationError, ModelInvocationError

VIDEO_URL = "https://replicate.delivery/clip.mp4"
AUDIO_URL = "https://replicate.delivery/line.mp3"
BUSY = ModelInvocationError("bytedance/seedance-1-pro-fast: Service is currently unavailable due to high demand (E003)")


def make_service(job_store, outputs=None, configured=True):
    replicate = FakeReplicateService(outputs, configured=configured)
    return JobService(replicate, job_store, SpeechService(replicate)), replicate


def make_request(image_uri, **overrides):
    fields = {"image": image_uri, "line": "Nice hat.", "mood": "upbeat", "mode": "seedance"}
    fields.update(overrides)
    return ReactionJobRequest(**fields)


async def test_start_job_returns_before_the_pipeline_runs(job_store, image_uri):
    service, replicate = make_service(job_store, {settings.VIDEO_MODEL: [VIDEO_URL]})

    handle = await service.start_job(make_request(image_uri))

    assert (await job_store.get(handle.job_id)).to_response() == {"status": "queued"}
    assert replicate.calls == []

    await handle.task

    job = await job_store.get(handle.job_id)
    assert job.to_response() == {"status": "succeeded", "videoUrl": VIDEO_URL}
    assert job_store.history[handle.job_id] == ["queued", "running", "succeeded"]


async def test_seedance_prompt_uses_line_and_mood_palette(job_store, image_uri):
    service, replicate = make_service(job_store, {settings.VIDEO_MODEL: [[VIDEO_URL]]})

    handle = await service.start_job(make_request(image_uri, line="Nice\nhat."))
    await handle.task

    (video_input,) = replicate.calls_for(settings.VIDEO_MODEL)
    assert video_input["image"] == image_uri
    assert 'Kinetic captions: "Nice hat."' in video_input["prompt"]
    assert "teal/cyan" in video_input["prompt"]
    assert video_input["aspect_ratio"] == "9:16"
    assert video_input["mode"] == "i2v"


async def test_avatar_mode_speaks_then_animates(job_store, image_uri):
    service, replicate = make_service(
        job_store,
        {
            settings.SPEECH_MODEL: [AUDIO_URL],
            settings.AVATAR_MODEL: [{"output": {"video": VIDEO_URL}}],
        },
    )

    handle = await service.start_job(make_request(image_uri, mode="talking", voice="Wise_Woman"))
    await handle.task

    assert [model_id for model_id, _ in replicate.calls] == [settings.SPEECH_MODEL, settings.AVATAR_MODEL]
    assert replicate.calls_for(settings.SPEECH_MODEL)[0]["voice_id"] == "Wise_Woman"
    assert replicate.calls_for(settings.AVATAR_MODEL)[0]["audio"] == AUDIO_URL
    job = await job_store.get(handle.job_id)
    assert job.mode == "avatar"
    assert job.video_url == VIDEO_URL


async def test_unknown_mode_falls_back_to_seedance(job_store, image_uri):
    service, replicate = make_service(job_store, {settings.VIDEO_MODEL: [VIDEO_URL]})

    handle = await service.start_job(make_request(image_uri, mode="hologram"))
    await handle.task

    assert [model_id for model_id, _ in replicate.calls] == [settings.VIDEO_MODEL]


@pytest.mark.parametrize(
    "overrides",
    [
        {"image": "iVBORw0KGgoAAAANSUhEUg=="},
        {"image": "data:text/plain;base64,aGVsbG8="},
        {"image": ""},
        {"line": ""},
        {"line": "   "},
    ],
)
async def test_invalid_input_fails_before_a_job_exists(job_store, image_uri, overrides):
    service, replicate = make_service(job_store)

    with pytest.raises(InputValidationError):
        await service.start_job(make_request(image_uri, **overrides))

    assert job_store.jobs == {}
    assert replicate.calls == []


async def test_missing_token_fails_before_a_job_exists(job_store, image_uri):
    service, _ = make_service(job_store, configured=False)

    with pytest.raises(ConfigurationError):
        await service.start_job(make_request(image_uri))

    assert job_store.jobs == {}


async def test_capacity_failure_is_retried_once_then_succeeds(job_store, image_uri):
    service, replicate = make_service(job_store, {settings.VIDEO_MODEL: [BUSY, VIDEO_URL]})

    handle = await service.start_job(make_request(image_uri))
    await handle.task

    assert len(replicate.calls) == 2
    assert (await job_store.get(handle.job_id)).video_url == VIDEO_URL
    assert job_store.history[handle.job_id] == ["queued", "running", "succeeded"]


async def test_capacity_failure_is_retried_exactly_once(job_store, image_uri):
    service, replicate = make_service(job_store, {settings.VIDEO_MODEL: [BUSY]})

    handle = await service.start_job(make_request(image_uri))
    await handle.task

    assert len(replicate.calls) == 2
    job = await job_store.get(handle.job_id)
    assert job.status == "failed"
    assert "high demand" in job.error
    assert job_store.history[handle.job_id] == ["queued", "running", "failed"]


async def test_other_model_failures_are_not_retried(job_store, image_uri):
    service, replicate = make_service(
        job_store, {settings.VIDEO_MODEL: [ModelInvocationError("NSFW content detected")]}
    )

    handle = await service.start_job(make_request(image_uri))
    await handle.task

    assert len(replicate.calls) == 1
    assert (await job_store.get(handle.job_id)).to_response() == {
        "status": "failed",
        "error": "NSFW content detected",
    }


async def test_unreadable_output_fails_the_job(job_store, image_uri):
    service, _ = make_service(job_store, {settings.VIDEO_MODEL: [{"unexpected": 1}]})

    handle = await service.start_job(make_request(image_uri))
    await handle.task

    job = await job_store.get(handle.job_id)
    assert job.status == "failed"
    assert "no usable URL" in job.error
    assert job.video_url is None


async def test_hung_stage_times_out(job_store, image_uri, monkeypatch):
    monkeypatch.setattr(settings, "STAGE_TIMEOUT_SECONDS", 0.01)
    service, _ = make_service(job_store, {settings.VIDEO_MODEL: [hang_forever]})

    handle = await service.start_job(make_request(image_uri))
    await handle.task

    job = await job_store.get(handle.job_id)
    assert job.status == "failed"
    assert "video did not finish" in job.error


async def test_superseding_job_cancels_the_stale_one(job_store, image_uri):
    service, _ = make_service(job_store, {settings.VIDEO_MODEL: [hang_forever, VIDEO_URL]})

    stale = await service.start_job(make_request(image_uri))
    await asyncio.sleep(0)
    assert (await job_store.get(stale.job_id)).status == "running"

    fresh = await service.start_job(make_request(image_uri, supersedes=stale.job_id))
    await fresh.task

    assert stale.task.cancelled()
    assert (await job_store.get(stale.job_id)).to_response() == {"status": "failed", "error": CANCELLED_ERROR}
    assert (await job_store.get(fresh.job_id)).video_url == VIDEO_URL
    assert service.tasks == {}


async def test_cancel_unknown_job_is_false(job_store):
    service, _ = make_service(job_store)

    assert await service.cancel("nope") is False


async def test_jobs_are_independent(job_store, image_uri):
    service, _ = make_service(
        job_store, {settings.VIDEO_MODEL: [ModelInvocationError("bad input"), VIDEO_URL]}
    )

    first = await service.start_job(make_request(image_uri))
    second = await service.start_job(make_request(image_uri))
    await asyncio.gather(first.task, second.task)

    statuses = sorted([(await job_store.get(first.job_id)).status, (await job_store.get(second.job_id)).status])
    assert statuses == ["failed", "succeeded"]


async def test_superseding_a_job_that_never_started_still_fails_it(job_store, image_uri):
    service, replicate = make_service(job_store, {settings.VIDEO_MODEL: [VIDEO_URL]})

    stale = await service.start_job(make_request(image_uri))
    fresh = await service.start_job(make_request(image_uri, supersedes=stale.job_id))
    await fresh.task

    assert stale.task.cancelled()
    job = await job_store.get(stale.job_id)
    assert job.is_terminal
    assert job.to_response() == {"status": "failed", "error": CANCELLED_ERROR}
    assert job_store.history[stale.job_id] == ["queued", "running", "failed"]
    assert len(replicate.calls) == 1


class ResultWriteFailingStore(RecordingJobStore):
    async def _save(self, job) -> None:
        if job.status == "succeeded":
            raise RuntimeError("firestore unavailable")
        await super()._save(job)


async def test_failed_result_write_marks_the_job_failed(image_uri):
    job_store = ResultWriteFailingStore()
    service, _ = make_service(job_store, {settings.VIDEO_MODEL: [VIDEO_URL]})

    handle = await service.start_job(make_request(image_uri))
    await handle.task

    job = await job_store.get(handle.job_id)
    assert job.status == "failed"
    assert "firestore unavailable" in job.error
    assert job_store.history[handle.job_id] == ["queued", "running", "failed"]

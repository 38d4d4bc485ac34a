import asyncio
import base64

import pytest

from services.job_store import InMemoryJobStore
from utils.env import settings
from utils.errors import ConfigurationError

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
JPEG_DATA_URI = "data:image/jpeg;base64," + base64.b64encode(JPEG_BYTES).decode("ascii")


class FakeReplicateService:
    """Scripted stand-in for ReplicateService.

    `outputs` maps a model id to a list of results consumed in order; the
    last one repeats. A result may be an exception (raised), a coroutine
    function (awaited) or a plain output value.
    """

    def __init__(self, outputs: dict | None = None, configured: bool = True):
        self.outputs = {model_id: list(results) for model_id, results in (outputs or {}).items()}
        self.configured = configured
        self.calls: list[tuple[str, dict]] = []
        self.fetched: list[str] = []

    def ensure_configured(self) -> str:
        if not self.configured:
            raise ConfigurationError("Missing REPLICATE_API_TOKEN")
        return "test-token"

    def calls_for(self, model_id: str) -> list[dict]:
        return [model_input for called, model_input in self.calls if called == model_id]

    async def run(self, model_id: str, model_input: dict):
        self.calls.append((model_id, model_input))
        results = self.outputs.get(model_id)
        if not results:
            raise AssertionError(f"unexpected call to {model_id}")
        result = results.pop(0) if len(results) > 1 else results[0]
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            return await result()
        return result

    async def fetch_bytes(self, url: str) -> bytes:
        self.fetched.append(url)
        return b"ID3-fake-audio"


class RecordingJobStore(InMemoryJobStore):
    """Memory store that remembers every status it wrote, per job."""

    def __init__(self, ttl_seconds: int | None = None):
        super().__init__(ttl_seconds)
        self.history: dict[str, list[str]] = {}

    async def _save(self, job) -> None:
        self.history.setdefault(job.id, []).append(job.status)
        await super()._save(job)


async def hang_forever():
    await asyncio.Event().wait()


@pytest.fixture
def image_uri() -> str:
    return JPEG_DATA_URI


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "REPLICATE_API_TOKEN", "test-token")
    monkeypatch.setattr(settings, "RETRY_BACKOFF_SECONDS", 0.0)
    monkeypatch.setattr(settings, "STAGE_TIMEOUT_SECONDS", 5.0)
    monkeypatch.setattr(settings, "REPLICATE_POLL_INTERVAL_SECONDS", 0.0)
    monkeypatch.setattr(settings, "JOB_STORE_BACKEND", "memory")
    return settings


@pytest.fixture
def job_store() -> RecordingJobStore:
    return RecordingJobStore()

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

from models.job import Job, JobState
from utils.env import settings
from utils.errors import ConfigurationError, JobNotFoundError

logger = logging.getLogger("job_store")


class JobStore(ABC):
    """Keyed registry of reaction jobs.

    The store owns the transition rules; backends only move records in and
    out. Each job has one writer (its processing task), so a read followed
    by a write of the whole record is enough.
    """

    def __init__(self, ttl_seconds: int | None = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.JOB_TTL_SECONDS

    @abstractmethod
    async def _load(self, job_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def _save(self, job: Job) -> None:
        ...

    async def create(self, job_id: str, mode: str | None = None) -> Job:
        existing = await self.get(job_id)
        if existing is not None:
            logger.debug(f"create: job {job_id} already exists, status={existing.status}")
            return existing
        job = Job.new(job_id, mode=mode, ttl_seconds=self.ttl_seconds)
        await self._save(job)
        logger.info(f"[{job_id[:8]}] queued")
        return job

    async def update(
        self,
        job_id: str,
        status: JobState,
        video_url: str | None = None,
        error: str | None = None,
    ) -> Job:
        job = await self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        updated = job.transition(status, video_url=video_url, error=error)
        if updated is job:
            logger.debug(f"[{job_id[:8]}] update to {status} is a no-op")
            return job
        await self._save(updated)
        logger.info(f"[{job_id[:8]}] {job.status} -> {status}")
        return updated

    async def get(self, job_id: str) -> Optional[Job]:
        data = await self._load(job_id)
        if data is None:
            return None
        return Job.from_dict(data)


class InMemoryJobStore(JobStore):
    """Process-local store for development and tests; lost on restart."""

    def __init__(self, ttl_seconds: int | None = None):
        super().__init__(ttl_seconds)
        self.jobs: dict[str, dict] = {}

    def _evict_expired(self) -> None:
        expired = [
            job_id for job_id, data in self.jobs.items()
            if Job.from_dict(data).is_expired()
        ]
        for job_id in expired:
            del self.jobs[job_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired job(s)")

    async def _load(self, job_id: str) -> Optional[dict]:
        self._evict_expired()
        data = self.jobs.get(job_id)
        return dict(data) if data is not None else None

    async def _save(self, job: Job) -> None:
        self.jobs[job.id] = job.to_dict()


class GcsJobStore(JobStore):
    """One JSON blob per job at jobs/{id}.json; expiry is a bucket lifecycle rule."""

    def __init__(
        self,
        bucket_name: str | None = None,
        ttl_seconds: int | None = None,
        storage_client=None,
    ):
        super().__init__(ttl_seconds)
        bucket_name = bucket_name or settings.GOOGLE_CLOUD_BUCKET_NAME
        if not bucket_name:
            raise ConfigurationError("GOOGLE_CLOUD_BUCKET_NAME is required for the gcs job store")
        if storage_client is None:
            from google.cloud import storage

            logger.info(f"Initializing GCS client for bucket: {bucket_name}")
            storage_client = storage.Client(project=settings.GOOGLE_CLOUD_PROJECT or None)
        self.storage_client = storage_client
        self.bucket = self.storage_client.bucket(bucket_name)

    def _blob_path(self, job_id: str) -> str:
        return f"jobs/{job_id}.json"

    def _download_job_sync(self, job_id: str) -> Optional[dict]:
        blob = self.bucket.blob(self._blob_path(job_id))
        if not blob.exists(client=self.storage_client):
            logger.debug(f"_download_job_sync: blob does not exist for job {job_id}")
            return None
        data = json.loads(blob.download_as_text())
        return data if isinstance(data, dict) else None

    def _upload_job_sync(self, job_id: str, data: dict) -> None:
        blob = self.bucket.blob(self._blob_path(job_id))
        blob.upload_from_string(
            json.dumps(data, separators=(",", ":"), sort_keys=True),
            content_type="application/json",
        )

    async def _load(self, job_id: str) -> Optional[dict]:
        return await asyncio.to_thread(self._download_job_sync, job_id)

    async def _save(self, job: Job) -> None:
        await asyncio.to_thread(self._upload_job_sync, job.id, job.to_dict())


class FirestoreJobStore(JobStore):
    """One document per job; a Firestore TTL policy on expires_at reaps old rows."""

    def __init__(self, collection: str | None = None, ttl_seconds: int | None = None, db=None):
        super().__init__(ttl_seconds)
        if db is None:
            import firebase_admin
            from firebase_admin import credentials, firestore_async

            if not firebase_admin._apps:
                cred_path = settings.GOOGLE_APPLICATION_CREDENTIALS
                if cred_path:
                    firebase_admin.initialize_app(credentials.Certificate(cred_path))
                else:
                    firebase_admin.initialize_app()
            db = firestore_async.client()
        self.db = db
        self.collection = collection or settings.FIRESTORE_JOBS_COLLECTION

    async def _load(self, job_id: str) -> Optional[dict]:
        doc = await self.db.collection(self.collection).document(job_id).get()
        return doc.to_dict() if doc.exists else None

    async def _save(self, job: Job) -> None:
        data = job.to_dict()
        # Firestore TTL policies need real timestamps
        data["created_at"] = job.created_at
        data["updated_at"] = job.updated_at
        data["expires_at"] = job.expires_at
        await self.db.collection(self.collection).document(job.id).set(data)


def build_job_store() -> JobStore:
    backend = (settings.JOB_STORE_BACKEND or "").strip().lower()
    logger.info(f"Using {backend or 'firestore'} job store")
    if backend == "memory":
        logger.warning("Memory job store selected - jobs do not survive restarts or span instances")
        return InMemoryJobStore()
    if backend == "gcs":
        return GcsJobStore()
    if backend in ("", "firestore"):
        return FirestoreJobStore()
    raise ConfigurationError(f"Unknown JOB_STORE_BACKEND: {settings.JOB_STORE_BACKEND}")

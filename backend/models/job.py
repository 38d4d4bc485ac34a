from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Literal

from utils.errors import InvalidTransitionError

JobState = Literal["queued", "running", "succeeded", "failed"]

TERMINAL_STATES = ("succeeded", "failed")
_NEXT_STATES: dict[str, tuple[str, ...]] = {
    "queued": ("running",),
    "running": ("succeeded", "failed"),
    "succeeded": (),
    "failed": (),
}


@dataclass
class ReflectRequest:
    """Captured frame plus the style knobs from the control panel"""
    image: str
    tone: str = "coach"
    intensity: int = 1


@dataclass
class Reflection:
    message: str
    mood: Literal["upbeat", "sleepy", "neutral"]
    error: Optional[str] = None

    def to_response(self) -> dict:
        data = {"message": self.message, "mood": self.mood}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ReactionJobRequest:
    """Request to create a reaction video job"""
    image: str
    line: str
    mood: str = "neutral"
    mode: str = "seedance"
    voice: Optional[str] = None
    supersedes: Optional[str] = None  # job id this capture replaces


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Job:
    id: str
    status: JobState = "queued"
    video_url: Optional[str] = None
    error: Optional[str] = None
    mode: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    expires_at: Optional[datetime] = None

    @classmethod
    def new(cls, job_id: str, mode: Optional[str] = None, ttl_seconds: int = 3600) -> "Job":
        created_at = _now()
        return cls(
            id=job_id,
            mode=mode,
            created_at=created_at,
            updated_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl_seconds),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or _now()) >= self.expires_at

    def transition(
        self,
        status: JobState,
        video_url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> "Job":
        """Return the job moved to `status`, or this job if nothing changes.

        Repeating the current state with the same fields is a no-op, which is
        what lets a retried pipeline re-enter "running".
        """
        if status == "succeeded" and (not video_url or error):
            raise InvalidTransitionError(f"Job {self.id}: succeeded needs a video_url and no error")
        if status == "failed" and (not error or video_url):
            raise InvalidTransitionError(f"Job {self.id}: failed needs an error and no video_url")
        if status in ("queued", "running") and (video_url or error):
            raise InvalidTransitionError(f"Job {self.id}: {status} cannot carry a result or error")

        if status == self.status:
            if video_url == self.video_url and error == self.error:
                return self
            raise InvalidTransitionError(f"Job {self.id} is already {self.status} with different fields")

        if status not in _NEXT_STATES.get(self.status, ()):
            raise InvalidTransitionError(f"Job {self.id} cannot move from {self.status} to {status}")

        return replace(self, status=status, video_url=video_url, error=error, updated_at=_now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "video_url": self.video_url,
            "error": self.error,
            "mode": self.mode,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return cls(
            id=data["id"],
            status=data.get("status", "queued"),
            video_url=data.get("video_url"),
            error=data.get("error"),
            mode=data.get("mode"),
            created_at=_parse_time(data.get("created_at")) or _now(),
            updated_at=_parse_time(data.get("updated_at")) or _now(),
            expires_at=_parse_time(data.get("expires_at")),
        )

    def to_response(self) -> dict:
        data = {"status": self.status}
        if self.video_url:
            data["videoUrl"] = self.video_url
        if self.error:
            data["error"] = self.error
        return data

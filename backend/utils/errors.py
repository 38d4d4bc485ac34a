import re

# Replicate reports saturated queues with free-form text; E003 is its
# "unavailable due to high demand" code.
CAPACITY_ERROR_PATTERN = re.compile(
    r"queue is full|high demand|at capacity|too many requests|\bE003\b",
    re.IGNORECASE,
)


class MirrorError(Exception):
    """Base class for errors raised by the mirror backend."""


class InputValidationError(MirrorError):
    status_code = 400


class ConfigurationError(MirrorError):
    status_code = 500


class ModelInvocationError(MirrorError):
    def __init__(self, message: str, model_id: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.model_id = model_id
        self.status_code = status_code

    @property
    def is_capacity_error(self) -> bool:
        return bool(CAPACITY_ERROR_PATTERN.search(str(self)))


class ResultShapeError(MirrorError):
    """A model finished but its output held nothing we know how to read."""


class StageTimeoutError(MirrorError):
    pass


class JobNotFoundError(MirrorError):
    pass


class InvalidTransitionError(MirrorError):
    pass

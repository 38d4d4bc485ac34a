from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.errors import ConfigurationError


class Settings(BaseSettings):
    REPLICATE_API_TOKEN: str | None = None
    REPLICATE_API_BASE_URL: str = "https://api.replicate.com/v1"
    REPLICATE_POLL_INTERVAL_SECONDS: float = 1.0
    REPLICATE_REQUEST_TIMEOUT_SECONDS: float = 120.0

    CAPTION_MODEL: str = "yorickvp/llava-13b:80537f9eead1a5bfa72d5ac6ea6414379be41d4d4f6679fd776e9535d1eb58bb"
    MESSAGE_MODEL: str = "meta/meta-llama-3-8b-instruct"
    SPEECH_MODEL: str = "minimax/speech-02-hd"
    VIDEO_MODEL: str = "bytedance/seedance-1-pro-fast"
    AVATAR_MODEL: str = "bytedance/omni-human"
    DEFAULT_VOICE: str = "English_PlayfulGirl"

    JOB_STORE_BACKEND: str = "firestore"
    FIRESTORE_JOBS_COLLECTION: str = "reaction_jobs"
    GOOGLE_CLOUD_PROJECT: str = ""
    GOOGLE_CLOUD_BUCKET_NAME: str = ""
    GOOGLE_APPLICATION_CREDENTIALS: str | None = None

    JOB_TTL_SECONDS: int = 3600
    RETRY_BACKOFF_SECONDS: float = 5.0
    STAGE_TIMEOUT_SECONDS: float = 300.0

    FRONTEND_URL: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True
    )

    def require_replicate_token(self) -> str:
        """Return the Replicate token or fail with a configuration error."""
        if not self.REPLICATE_API_TOKEN:
            raise ConfigurationError("Missing REPLICATE_API_TOKEN")
        return self.REPLICATE_API_TOKEN

settings = Settings()

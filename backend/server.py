import logging
import os
from utils.env import settings

# Export credentials to os.environ so Google Cloud clients (GCS, Firestore) can find them
if settings.GOOGLE_APPLICATION_CREDENTIALS:
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = settings.GOOGLE_APPLICATION_CREDENTIALS

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from blacksheep import Application
from rodi import Container

from services.job_service import JobService
from services.job_store import JobStore, build_job_store
from services.reflect_service import ReflectService
from services.replicate_service import ReplicateService
from services.speech_service import SpeechService

# Controllers register their routes on import
import controllers.health  # noqa: F401,E402
import controllers.job_status  # noqa: F401,E402
import controllers.reaction_video  # noqa: F401,E402
import controllers.reflect  # noqa: F401,E402
import controllers.text_to_speech  # noqa: F401,E402


def build_services() -> Container:
    services = Container()
    services.add_singleton(ReplicateService)
    services.add_singleton(SpeechService)
    services.add_singleton(ReflectService)
    services.add_singleton_by_factory(build_job_store, JobStore)
    services.add_singleton(JobService)
    return services


def create_app(services: Container | None = None) -> Application:
    app = Application(services=services or build_services())
    app.use_cors(
        allow_methods="*",
        allow_origins="*",
        allow_headers="*",
    )
    return app


app = create_app()

from celery import Celery

from .config import get_settings
from .logging import configure_logging

settings = get_settings()
configure_logging()

RUN_RESEARCH_TASK = "app.services.orchestrator.run_research_session"
RESEARCH_QUEUE = "research"

celery_app = Celery(
    "research_orchestrator",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_routes={RUN_RESEARCH_TASK: {"queue": RESEARCH_QUEUE}},
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    imports=("app.services.orchestrator",),
)

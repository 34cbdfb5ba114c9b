from celery import Celery

from caseflow.config import settings

celery_app = Celery(
    "caseflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["caseflow.tasks.events"],
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

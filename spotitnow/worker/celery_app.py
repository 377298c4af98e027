"""
Celery Application Configuration
"""
from celery import Celery
from spotitnow.config import settings

# Create Celery app
celery_app = Celery(
    "spotitnow_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "spotitnow.worker.tasks"
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    result_expires=3600,
)

celery_app.conf.task_routes = {
    "spotitnow.worker.tasks.regenerate_region_manifest": {"queue": "manifests"},
    "spotitnow.worker.tasks.*": {"queue": "default"},
}

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from eventhub.common.logging import setup_logging
from eventhub.config import settings

app = Celery(
    "eventhub",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "eventhub.tasks.negotiation_tasks.*": {"queue": "negotiation"},
    },
    beat_schedule={
        "process-pending-retractions": {
            "task": "eventhub.tasks.negotiation_tasks.process_pending_retractions",
            "schedule": crontab(minute="*/5"),  # every 5 minutes
        },
        "reconcile-mirrors": {
            "task": "eventhub.tasks.negotiation_tasks.reconcile_mirrors",
            "schedule": crontab(minute=0),  # every hour
        },
    },
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    setup_logging()


app.autodiscover_tasks(["eventhub.tasks.negotiation_tasks"], related_name=None)

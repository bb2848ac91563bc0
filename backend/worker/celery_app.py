"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Workflow tasks routed to their own queue
- Beat schedule for the overdue-checkpoint sweep
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from app.config import get_settings
from core.logging_config import setup_logging

settings = get_settings()

celery_app = Celery(
    "pulse_engine",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    task_routes={
        "worker.tasks.workflow.*": {"queue": "workflows"},
        "worker.tasks.*": {"queue": "default"},
    },
    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Waits are checkpointed, so a run segment never sleeps for long
    task_soft_time_limit=300,
    task_time_limit=600,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,

    # Redis redelivers unacked tasks after the visibility timeout; resume
    # ETAs are capped below it
    broker_transport_options={"visibility_timeout": settings.RESUME_ETA_MAX_SECONDS * 2},

    beat_schedule={
        "resume-overdue-runs": {
            "task": "worker.tasks.workflow.resume_due_runs",
            "schedule": crontab(minute="*/1"),
            "options": {"queue": "workflows"},
        },
    },

    include=[
        "worker.tasks.workflow",
    ],
)


@celery_setup_logging.connect
def _configure_logging(loglevel=None, **kwargs):
    """Route Celery's own logging through structlog."""
    setup_logging(loglevel)

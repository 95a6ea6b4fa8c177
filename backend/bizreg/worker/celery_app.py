"""
bizreg Celery Application
Celery worker configuration for background ingestion runs
"""

from celery import Celery
from kombu import Queue

from bizreg.core.config import settings

# Create Celery application
celery_app = Celery(
    "bizreg_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="Asia/Seoul",
    enable_utc=True,

    # Task tracking
    task_track_started=True,
    task_acks_late=True,  # Acknowledge after task completion

    # Timeouts (enrichment run deadline + download + persistence)
    task_time_limit=900,
    task_soft_time_limit=840,

    # Worker settings
    worker_prefetch_multiplier=1,  # For long-running tasks
    worker_concurrency=2,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Task queues
    task_queues=[
        Queue("ingestion", routing_key="ingestion"),
        Queue("default", routing_key="default"),
    ],
    task_default_queue="default",
    task_default_routing_key="default",
    task_routes={
        "bizreg.worker.tasks.ingest_business_entities": {"queue": "ingestion"},
    },
)

# Auto-discover tasks in the tasks module
celery_app.autodiscover_tasks(["bizreg.worker.tasks"])

"""
Celery application for outgoing mail.

Invitation emails are the only background work; they go to the "email" queue.
"""

from celery import Celery
from kombu import Queue

from davinci.core.config import settings

EMAIL_QUEUE = "email"

celery_app = Celery(
    "davinci",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["davinci.workers.email_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="UTC",
    # Nobody waits on an email result
    task_ignore_result=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue=EMAIL_QUEUE,
    task_queues=(Queue(EMAIL_QUEUE),),
    # Keep a dead broker from stalling the HTTP request that enqueues
    task_publish_retry_policy={
        "max_retries": 2,
        "interval_start": 0,
        "interval_step": 0.5,
        "interval_max": 1,
    },
    broker_connection_retry_on_startup=True,
)

"""Celery application for background PR reviews."""

from celery import Celery

from compliance_copilot.config import get_settings

settings = get_settings()

celery_app = Celery(
    "compliance_copilot",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["compliance_copilot.tasks.review_pr"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=24 * 3600,
    timezone="UTC",
    enable_utc=True,
    task_default_queue="reviews",
    task_track_started=True,
    # Soft limit fires a minute before the hard kill.
    task_time_limit=settings.review_task_time_limit,
    task_soft_time_limit=max(settings.review_task_time_limit - 60, 1),
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.review_worker_concurrency,
)

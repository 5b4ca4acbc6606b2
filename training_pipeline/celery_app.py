"""Celery application configuration."""

from celery import Celery

from recommendation_engine.logging_config import setup_logging
from training_pipeline.config import get_settings

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)

celery = Celery(
    "training_pipeline",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["training_pipeline.tasks"],
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # Periodic retraining, daily by default
    beat_schedule={
        "scheduled-mf-retrain": {
            "task": "training_pipeline.tasks.train_matrix_factorization",
            "schedule": settings.retrain_interval_seconds,
        },
    },
)

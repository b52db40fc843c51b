"""Celery application configuration"""
from __future__ import annotations

from celery import Celery, signals
from kombu import Queue

from core.config import settings
from core.logging_config import configure_logging, get_logger
from .beat import CELERY_BEAT_SCHEDULE


CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("storefront_payments")

celery_app.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    # task arguments are plain ids and strings
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.celery.timezone,
    enable_utc=True,
    # ack after the work is done so a lost worker means a redelivery
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    task_always_eager=settings.celery.task_always_eager,
    task_queues=(
        Queue("payments"),
        Queue("default"),
    ),
    task_routes={
        "payments.*": {"queue": "payments"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@signals.setup_logging.connect
def _setup_logging(**kwargs):
    # connecting this signal stops Celery from installing its own handlers
    configure_logging()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, result_backend=sender.conf.result_backend)

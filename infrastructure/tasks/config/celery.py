"""Celery application configuration"""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from kombu import Queue

from core.config import settings
from application.ports.task_queue import Queues


# Task modules are discovered via this tuple so new packages only need to be
# listed here rather than altering the runtime imports scattered elsewhere.
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("order_saga")

celery_app.conf.update(
    # Connection endpoints – fall back to env variables when settings omit them.
    broker_url=settings.celery.broker_url or settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.celery.result_backend or settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    # JSON keeps payloads interoperable and avoids arbitrary code execution.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # At-least-once: acknowledge after the handler returns, redeliver on worker loss.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue=Queues.DEFAULT,
    task_default_retry_delay=settings.celery.default_retry_delay,
    # notifications/events are declared so producers can route to them even
    # though their consumers run elsewhere.
    task_queues=(
        Queue(Queues.ORDERS),
        Queue(Queues.REFUNDS),
        Queue(Queues.NOTIFICATIONS),
        Queue(Queues.EVENTS),
        Queue(Queues.DEFAULT),
    ),
    task_routes={
        "orders.*": {"queue": Queues.ORDERS},
        "refunds.*": {"queue": Queues.REFUNDS},
        "notifications.*": {"queue": Queues.NOTIFICATIONS},
        "events.*": {"queue": Queues.EVENTS},
    },
    # Eager mode runs handlers inside the caller's event loop; keep it opt-in.
    task_always_eager=settings.celery.task_always_eager,
)

celery_app.conf.imports = CELERY_IMPORTS

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, result_backend=sender.conf.result_backend)

"""Refund Celery tasks"""
from __future__ import annotations

from celery import shared_task

from application.ports.task_queue import TaskNames
from core.config import settings
from ..utils.base_task import BaseTask

_refunds = settings.refunds


@shared_task(
    name=TaskNames.PROCESS_REFUND,
    bind=True,
    base=BaseTask,
    max_retries=max(_refunds.process_attempts - 1, 0),
    soft_time_limit=_refunds.process_timeout,
    time_limit=_refunds.process_timeout + 10,
)
def process_refund(self, refund_id: int):
    """Submit a pending refund to the gateway.

    Failed attempts are retried by Celery; the last one leaves the refund in
    ``failed`` for an operator retry.
    """
    return self.run_step({"refund_id": refund_id})

"""Order saga Celery tasks.

Each step is a thin wrapper: the work lives in ``OrderSagaService`` and is
reached through ``BaseTask.run_step`` so the in-process queue runs the same
code path.
"""
from __future__ import annotations

from celery import shared_task

from application.ports.task_queue import TaskNames
from core.config import settings
from ..utils.base_task import BaseTask

_saga = settings.saga
_retries = max(_saga.step_attempts - 1, 0)


@shared_task(
    name=TaskNames.START_WORKFLOW,
    bind=True,
    base=BaseTask,
    max_retries=_retries,
    soft_time_limit=_saga.workflow_timeout,
    time_limit=_saga.workflow_timeout + 10,
)
def start_workflow(self, order_id: int):
    """Enqueue reserve -> pay -> finalize for a pending order."""
    return self.run_step({"order_id": order_id})


@shared_task(
    name=TaskNames.RESERVE_STOCK,
    bind=True,
    base=BaseTask,
    max_retries=_retries,
    soft_time_limit=_saga.reserve_timeout,
    time_limit=_saga.reserve_timeout + 10,
)
def reserve_stock(self, order_id: int):
    return self.run_step({"order_id": order_id})


@shared_task(
    name=TaskNames.PROCESS_PAYMENT,
    bind=True,
    base=BaseTask,
    max_retries=_retries,
    soft_time_limit=_saga.payment_timeout,
    time_limit=_saga.payment_timeout + 10,
)
def process_payment(self, order_id: int):
    return self.run_step({"order_id": order_id})


@shared_task(
    name=TaskNames.FINALIZE_ORDER,
    bind=True,
    base=BaseTask,
    max_retries=_retries,
    soft_time_limit=_saga.finalize_timeout,
    time_limit=_saga.finalize_timeout + 10,
)
def finalize_order(self, order_id: int):
    return self.run_step({"order_id": order_id})


# Linked as errback of the saga chain. It must keep a single argument so
# Celery enqueues it as a task instead of calling it inline with
# (request, exc, traceback).
@shared_task(
    name=TaskNames.CHAIN_ABANDONED,
    bind=True,
    base=BaseTask,
    max_retries=_retries,
    soft_time_limit=_saga.rollback_timeout,
    time_limit=_saga.rollback_timeout + 10,
)
def chain_abandoned(self, order_id):
    """Claim compensation for the order and schedule its rollback."""
    return self.run_step({"order_id": order_id})


@shared_task(
    name=TaskNames.ROLLBACK_ORDER,
    bind=True,
    base=BaseTask,
    max_retries=_retries,
    soft_time_limit=_saga.rollback_timeout,
    time_limit=_saga.rollback_timeout + 10,
)
def rollback_order(self, order_id: int):
    """Release reservations and mark the order failed (compensation)."""
    return self.run_step({"order_id": order_id})

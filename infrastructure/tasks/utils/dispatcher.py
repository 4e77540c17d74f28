"""Celery implementation of the task queue port."""
from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from celery import chain
from celery.canvas import Signature

from application.ports.task_queue import Queues, TaskSignature
from core.logging_config import get_logger
from ..config.celery import celery_app

logger = get_logger(__name__)

# hard limit = soft limit + grace, so the soft-limit exception can unwind first
HARD_LIMIT_GRACE = 10


class TaskDispatcher:
    """Internal facade used by application layer to schedule tasks."""

    def __init__(self, app=celery_app) -> None:
        self.app = app

    def signature(self, sig: TaskSignature, queue: Optional[str] = None) -> Signature:
        options: Dict[str, Any] = {"queue": sig.queue or queue or Queues.DEFAULT}
        if sig.timeout:
            options["soft_time_limit"] = sig.timeout
            options["time_limit"] = sig.timeout + HARD_LIMIT_GRACE
        if sig.delay:
            options["countdown"] = sig.delay
        # immutable: a chained step never receives the previous step's return value
        return self.app.signature(sig.name, kwargs=dict(sig.payload), options=options, immutable=True)

    def enqueue(
        self,
        task_name: str,
        payload: dict[str, Any],
        queue: str = Queues.DEFAULT,
        *,
        attempts: int = 3,
        timeout: Optional[float] = None,
        delay: float = 0,
    ) -> Optional[str]:
        """Fire-and-forget dispatch by task name.

        Retry budgets are declared on the consuming task (``max_retries``);
        ``attempts`` is recorded for observability only.
        """
        sig = TaskSignature(task_name, dict(payload), queue, attempts, timeout, delay)
        result = self.signature(sig).apply_async()
        logger.info("task_enqueued", task_name=task_name, queue=queue, task_id=result.id, delay=delay, attempts=attempts)
        return result.id

    def enqueue_chain(
        self,
        tasks: Sequence[TaskSignature],
        on_abandon: TaskSignature,
        queue: str = Queues.DEFAULT,
    ) -> Optional[str]:
        """Dependent chain; ``on_abandon`` is linked as errback to every step.

        A step only fails (and triggers the errback) after its own retries
        are exhausted, so the errback marks the chain as abandoned.
        """
        workflow = chain(*[self.signature(t, queue) for t in tasks])
        workflow.on_error(self.signature(on_abandon, queue))
        result = workflow.apply_async()
        logger.info(
            "task_chain_enqueued",
            steps=[t.name for t in tasks],
            on_abandon=on_abandon.name,
            queue=queue,
            task_id=result.id,
        )
        return result.id

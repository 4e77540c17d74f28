"""Common base task for Celery jobs"""
from __future__ import annotations

import asyncio
import functools
from typing import Any, Dict, Optional

from celery import Task
from pydantic import BaseModel

from application.ports.task_queue import TaskAttempt
from core.config import settings
from core.logging_config import bind_task_context, clear_task_context, get_logger
from domain.common.exceptions import is_retryable
from infrastructure.database import create_engine, create_session_factory
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks.handlers import build_services, build_task_handlers
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from .dispatcher import TaskDispatcher

logger = get_logger(__name__)


async def _run_handler(task_name: str, payload: Dict[str, Any], attempt: TaskAttempt, timeout: Optional[float]):
    # 每个任务一个事件循环，连接不能跨循环复用
    engine = create_engine(null_pool=settings.database.worker_null_pool)
    try:
        uow_factory = functools.partial(
            SQLAlchemyUnitOfWork, session_factory=create_session_factory(engine)
        )
        services = build_services(uow_factory, TaskDispatcher(), get_payment_gateway())
        handler = build_task_handlers(services)[task_name]
        return await asyncio.wait_for(handler(payload, attempt), timeout=timeout)
    finally:
        await engine.dispose()


class BaseTask(Task):
    """Provides unified lifecycle logging and the attempt/retry policy for saga steps."""

    def attempt(self) -> TaskAttempt:
        max_retries = self.max_retries if self.max_retries is not None else 0
        return TaskAttempt(number=self.request.retries + 1, max_attempts=max_retries + 1)

    def run_step(self, payload: Dict[str, Any]) -> Any:
        """Run the async handler registered under this task's name.

        Retryable errors are retried until the attempt budget is spent; the
        final or a permanent failure propagates so the chain's errback fires.
        """
        attempt = self.attempt()
        bind_task_context(task_id=self.request.id, task_name=self.name, attempt=attempt.number)
        try:
            result = asyncio.run(_run_handler(self.name, payload, attempt, self.soft_time_limit))
        except Exception as exc:
            if attempt.is_final or not is_retryable(exc):
                raise
            raise self.retry(exc=exc)
        finally:
            clear_task_context("task_id", "task_name", "attempt")
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return result

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        """Emit a structured error message before the default Celery handling."""
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            args=args,
            kwargs=kwargs,
            exc=str(exc),
            retryable=is_retryable(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            kwargs=kwargs,
            retries=self.request.retries,
            exc=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        """Log a success event so operators can trace normal execution."""
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
        )
        super().on_success(retval, task_id, args, kwargs)

"""In-process task queue.

Implements the ``TaskQueue`` port without a broker: jobs are buffered and
executed by ``drain()`` with the same attempt budget, per-attempt timeout and
chain/abandon semantics as the Celery adapter. Used by tests and local runs.
"""
from __future__ import annotations

import asyncio
import itertools
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Sequence

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_none

from application.ports.task_queue import Queues, TaskAttempt, TaskSignature
from core.logging_config import get_logger
from domain.common.exceptions import is_retryable
from infrastructure.tasks.handlers import TaskHandler


logger = get_logger(__name__)


@dataclass
class _Job:
    job_id: str
    steps: List[TaskSignature]
    on_abandon: Optional[TaskSignature] = None


@dataclass
class TaskFailure:
    signature: TaskSignature
    error: BaseException
    attempts: int = field(default=1)


class InlineTaskQueue:
    def __init__(self, *, wait=None) -> None:
        self._handlers: Dict[str, TaskHandler] = {}
        self._pending: Deque[_Job] = deque()
        self._ids = itertools.count(1)
        self._wait = wait or wait_none()
        # every enqueue() call, including tasks consumed outside this service
        self.dispatched: List[TaskSignature] = []
        self.chains: List[_Job] = []
        self.failures: List[TaskFailure] = []

    def register(self, name: str, handler: TaskHandler) -> None:
        self._handlers[name] = handler

    def register_many(self, handlers: Dict[str, TaskHandler]) -> None:
        self._handlers.update(handlers)

    def enqueue(
        self,
        task_name: str,
        payload: dict[str, Any],
        queue: str = Queues.DEFAULT,
        *,
        attempts: int = 3,
        timeout: Optional[float] = None,
        delay: float = 0,
    ) -> str:
        sig = TaskSignature(
            name=task_name,
            payload=dict(payload),
            queue=queue,
            attempts=attempts,
            timeout=timeout,
            delay=delay,
        )
        job = _Job(job_id=f"inline-{next(self._ids)}", steps=[sig])
        self.dispatched.append(sig)
        self._pending.append(job)
        return job.job_id

    def enqueue_chain(
        self,
        tasks: Sequence[TaskSignature],
        on_abandon: TaskSignature,
        queue: str = Queues.DEFAULT,
    ) -> str:
        job = _Job(job_id=f"inline-chain-{next(self._ids)}", steps=list(tasks), on_abandon=on_abandon)
        self.chains.append(job)
        self._pending.append(job)
        return job.job_id

    def pending_count(self) -> int:
        return len(self._pending)

    def dispatched_named(self, name: str) -> List[TaskSignature]:
        return [sig for sig in self.dispatched if sig.name == name]

    async def drain(self, *, max_jobs: int = 1000) -> int:
        """执行缓冲中的任务（包括执行过程中新排入的），返回执行的作业数"""
        executed = 0
        while self._pending:
            if executed >= max_jobs:
                raise RuntimeError(f"inline queue did not settle after {max_jobs} jobs")
            job = self._pending.popleft()
            executed += 1
            for sig in job.steps:
                if await self._execute(sig):
                    continue
                if job.on_abandon is not None:
                    logger.warning("task_chain_abandoned", job_id=job.job_id, failed_task=sig.name)
                    await self._execute(job.on_abandon)
                break
        return executed

    async def _execute(self, sig: TaskSignature) -> bool:
        handler = self._handlers.get(sig.name)
        if handler is None:
            # consumers of notifications / metrics events live outside this service
            logger.info("task_forwarded", task_name=sig.name, queue=sig.queue, payload=sig.payload)
            return True

        attempts = max(1, sig.attempts)
        number = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                retry=retry_if_exception(is_retryable),
                wait=self._wait,
                reraise=True,
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    await asyncio.wait_for(
                        handler(dict(sig.payload), TaskAttempt(number, attempts)),
                        timeout=sig.timeout,
                    )
        except Exception as exc:
            logger.error(
                "inline_task_failed",
                task_name=sig.name,
                payload=sig.payload,
                attempts=number,
                error=str(exc) or exc.__class__.__name__,
            )
            self.failures.append(TaskFailure(signature=sig, error=exc, attempts=number))
            return False
        logger.info("inline_task_succeeded", task_name=sig.name, attempts=number)
        return True

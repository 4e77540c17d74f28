"""
Task queue port.

Saga steps and refund processing are delivered at-least-once by a queue the
application only knows through this protocol. Adapters: Celery
(``infrastructure.tasks.utils.dispatcher``) and in-process
(``infrastructure.tasks.inline``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence, runtime_checkable


class TaskNames:
    START_WORKFLOW = "orders.start_workflow"
    RESERVE_STOCK = "orders.reserve_stock"
    PROCESS_PAYMENT = "orders.process_payment"
    FINALIZE_ORDER = "orders.finalize_order"
    ROLLBACK_ORDER = "orders.rollback_order"
    CHAIN_ABANDONED = "orders.chain_abandoned"
    PROCESS_REFUND = "refunds.process_refund"
    # consumed outside this service
    SEND_ORDER_NOTIFICATION = "notifications.send_order_notification"
    ORDER_COMPLETED = "events.order_completed"
    REFUND_REQUESTED = "events.refund_requested"
    REFUND_COMPLETED = "events.refund_completed"


class Queues:
    ORDERS = "orders"
    REFUNDS = "refunds"
    NOTIFICATIONS = "notifications"
    EVENTS = "events"
    DEFAULT = "default"


@dataclass(frozen=True)
class TaskSignature:
    """One unit of work: handler name, JSON payload and delivery options."""

    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    queue: str = Queues.DEFAULT
    attempts: int = 3
    timeout: Optional[float] = None
    delay: float = 0


@dataclass(frozen=True)
class TaskAttempt:
    number: int = 1
    max_attempts: int = 1

    @property
    def is_final(self) -> bool:
        return self.number >= self.max_attempts


@runtime_checkable
class TaskQueue(Protocol):
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
        """Fire-and-forget dispatch; returns the task id when the backend has one."""
        ...

    def enqueue_chain(
        self,
        tasks: Sequence[TaskSignature],
        on_abandon: TaskSignature,
        queue: str = Queues.DEFAULT,
    ) -> Optional[str]:
        """Run ``tasks`` strictly in order; call ``on_abandon`` once if a step exhausts its attempts."""
        ...

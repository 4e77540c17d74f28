"""Composition root for task handlers.

Maps queue task names to async callables ``(payload, attempt)`` so the Celery
adapter and the in-process queue drive exactly the same service code.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from application.ports.payment_gateway import PaymentGateway
from application.ports.task_queue import TaskAttempt, TaskNames, TaskQueue
from application.services.order_saga_service import OrderSagaService
from application.services.order_service import OrderService
from application.services.refund_service import RefundApplicationService
from core.config import settings


TaskHandler = Callable[[Dict[str, Any], TaskAttempt], Awaitable[Any]]


@dataclass
class Services:
    orders: OrderService
    saga: OrderSagaService
    refunds: RefundApplicationService


def build_services(
    uow_factory: Callable[..., Any],
    task_queue: TaskQueue,
    gateway: PaymentGateway,
) -> Services:
    return Services(
        orders=OrderService(uow_factory, task_queue, config=settings.saga),
        saga=OrderSagaService(uow_factory, task_queue, gateway, config=settings.saga),
        refunds=RefundApplicationService(uow_factory, task_queue, gateway, config=settings.refunds),
    )


def build_task_handlers(services: Services) -> Dict[str, TaskHandler]:
    saga = services.saga
    refunds = services.refunds

    async def start_workflow(payload, attempt):
        return await saga.start_workflow(int(payload["order_id"]))

    async def reserve_stock(payload, attempt):
        await saga.reserve_stock(int(payload["order_id"]), final_attempt=attempt.is_final)

    async def process_payment(payload, attempt):
        payment = await saga.process_payment(int(payload["order_id"]))
        return {"payment_id": payment.id, "status": payment.status.value} if payment else None

    async def finalize_order(payload, attempt):
        await saga.finalize_order(int(payload["order_id"]))

    async def chain_abandoned(payload, attempt):
        return await saga.handle_chain_abandoned(
            int(payload["order_id"]), failed_task=payload.get("failed_task")
        )

    async def rollback_order(payload, attempt):
        await saga.rollback_order(int(payload["order_id"]))

    async def process_refund(payload, attempt):
        refund = await refunds.process_refund(int(payload["refund_id"]), final_attempt=attempt.is_final)
        return {"refund_reference": refund.refund_reference, "status": refund.status}

    return {
        TaskNames.START_WORKFLOW: start_workflow,
        TaskNames.RESERVE_STOCK: reserve_stock,
        TaskNames.PROCESS_PAYMENT: process_payment,
        TaskNames.FINALIZE_ORDER: finalize_order,
        TaskNames.CHAIN_ABANDONED: chain_abandoned,
        TaskNames.ROLLBACK_ORDER: rollback_order,
        TaskNames.PROCESS_REFUND: process_refund,
    }

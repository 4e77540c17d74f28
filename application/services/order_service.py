"""
订单应用服务 - 下单与查询
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.orders import CreateOrderDTO, OrderSummaryDTO
from application.ports.task_queue import Queues, TaskNames, TaskQueue
from core.config import SagaSettings, settings
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.refund.entity import RefundStatus


logger = get_logger(__name__)


class OrderService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        task_queue: TaskQueue,
        *,
        config: Optional[SagaSettings] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.task_queue = task_queue
        self.config = config or settings.saga

    async def create_order(self, dto: CreateOrderDTO) -> OrderSummaryDTO:
        """持久化 pending 订单（总额一次性确定），提交后排入 Saga 工作流任务。"""
        order = Order.create(
            order_reference=dto.order_reference,
            customer_id=dto.customer_id,
            customer_name=dto.customer_name,
            product_sku=dto.product_sku,
            product_name=dto.product_name,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            currency=dto.currency,
            order_date=dto.order_date,
        )
        async with self._uow_factory() as uow:
            created = await uow.order_repository.create(order)

        self.task_queue.enqueue(
            TaskNames.START_WORKFLOW,
            {"order_id": created.id},
            queue=Queues.ORDERS,
            attempts=self.config.step_attempts,
            timeout=self.config.workflow_timeout,
        )
        logger.info("order_workflow_queued", order_id=created.id, order_reference=created.order_reference)
        return self._to_summary(created)

    async def get_order(
        self, order_id: Optional[int] = None, *, order_reference: Optional[str] = None
    ) -> OrderSummaryDTO:
        """订单概要：状态、最近一次支付、退款合计"""
        async with self._uow_factory(readonly=True) as uow:
            if order_id is not None:
                order = await uow.order_repository.get_by_id(order_id)
            elif order_reference is not None:
                order = await uow.order_repository.get_by_reference(order_reference)
            else:
                raise ValueError("order_id or order_reference is required")
            if order is None:
                raise OrderNotFoundException(order_id, reference=order_reference)
            payment = await uow.payment_repository.get_latest_for_order(order.id)
            refunded = await uow.refund_repository.sum_amount(order.id, [RefundStatus.COMPLETED])

        summary = self._to_summary(order)
        summary.total_refunded = refunded
        summary.refundable_amount = order.total_amount - refunded
        if payment is not None:
            summary.latest_payment_status = payment.status.value
            summary.latest_transaction_id = payment.transaction_id
        return summary

    @staticmethod
    def _to_summary(order: Order) -> OrderSummaryDTO:
        return OrderSummaryDTO(
            id=order.id,
            order_reference=order.order_reference,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            product_sku=order.product_sku,
            product_name=order.product_name,
            quantity=order.quantity,
            unit_price=order.unit_price,
            total_amount=order.total_amount,
            currency=order.currency,
            status=order.status.value,
            order_date=order.order_date,
            refundable_amount=order.total_amount,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

"""
Order fulfilment saga.

Each step runs in its own local transaction and is written to be re-executed
under at-least-once delivery:

    ReserveStock -> ProcessPayment -> FinalizeOrder

When a step exhausts its attempts the queue calls ``handle_chain_abandoned``,
which claims compensation once and enqueues ``RollbackOrder``.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from application.dtos.payments import ChargeRequest
from application.ports.payment_gateway import PaymentGateway
from application.ports.task_queue import Queues, TaskNames, TaskQueue, TaskSignature
from core.config import SagaSettings, settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import (
    GatewayDeclinedException,
    InvalidTransitionException,
    OrderNotFoundException,
    PaymentNotCompletedException,
    is_retryable,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.inventory.service import InventoryLedger
from domain.order.entity import Order, OrderStatus
from domain.order.events import OrderCompleted, OrderRolledBack
from domain.payment.entity import Payment, PaymentStatus


logger = get_logger(__name__)

# 重投时视为“预留已完成”的状态
_RESERVED_OR_LATER = frozenset(
    {OrderStatus.RESERVED, OrderStatus.PAYMENT_PROCESSING, OrderStatus.COMPLETED}
)


class OrderSagaService:
    def __init__(
        self,
        uow_factory: Callable[[], AbstractUnitOfWork],
        task_queue: TaskQueue,
        gateway: PaymentGateway,
        *,
        config: Optional[SagaSettings] = None,
        gateway_timeout: Optional[float] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.task_queue = task_queue
        self.gateway = gateway
        self.config = config or settings.saga
        self.gateway_timeout = gateway_timeout or payment_settings.request_timeout

    def _ledger(self, uow: AbstractUnitOfWork) -> InventoryLedger:
        return InventoryLedger(
            uow.inventory_repository,
            reservation_ttl_minutes=self.config.reservation_ttl_minutes,
            auto_provision=self.config.auto_provision_products,
            auto_provision_stock=self.config.auto_provision_stock,
        )

    @staticmethod
    async def _load(uow: AbstractUnitOfWork, order_id: int) -> Order:
        order = await uow.order_repository.get_by_id(order_id, for_update=True)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    def _step(self, name: str, order_id: int, timeout: int) -> TaskSignature:
        return TaskSignature(
            name=name,
            payload={"order_id": order_id},
            queue=Queues.ORDERS,
            attempts=self.config.step_attempts,
            timeout=timeout,
        )

    # ------------------------------------------------------------------ workflow
    async def start_workflow(self, order_id: int) -> Optional[str]:
        """为 pending 订单排入 reserve → pay → finalize 链；其他状态不重复启动。"""
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
        if order.status != OrderStatus.PENDING:
            logger.info("workflow_skipped", order_id=order_id, status=order.status.value)
            return None

        chain_id = self.task_queue.enqueue_chain(
            [
                self._step(TaskNames.RESERVE_STOCK, order_id, self.config.reserve_timeout),
                self._step(TaskNames.PROCESS_PAYMENT, order_id, self.config.payment_timeout),
                self._step(TaskNames.FINALIZE_ORDER, order_id, self.config.finalize_timeout),
            ],
            on_abandon=TaskSignature(
                name=TaskNames.CHAIN_ABANDONED,
                payload={"order_id": order_id},
                queue=Queues.ORDERS,
                attempts=self.config.step_attempts,
                timeout=self.config.rollback_timeout,
            ),
            queue=Queues.ORDERS,
        )
        logger.info("workflow_started", order_id=order_id, order_reference=order.order_reference, chain_id=chain_id)
        return chain_id

    # ------------------------------------------------------------------ steps
    async def reserve_stock(self, order_id: int, *, final_attempt: bool = True) -> None:
        """
        预留库存并将订单置为 reserved（同一事务）。

        失败时：永久性错误或最后一次尝试先把订单置为 failed 再抛出，
        使被放弃的链总是留下可检查的终态。
        较早的可重试失败保持 pending：failed → reserved 不是合法迁移，置为 failed 会阻断后续重试。
        """
        try:
            async with self._uow_factory() as uow:
                order = await self._load(uow, order_id)
                if order.status in _RESERVED_OR_LATER:
                    logger.info("reserve_stock_skipped", order_id=order_id, status=order.status.value)
                    return
                if order.status != OrderStatus.PENDING:
                    raise InvalidTransitionException(
                        "order", order.status.value, OrderStatus.RESERVED.value, entity_id=order_id
                    )
                reservation, created = await self._ledger(uow).reserve(
                    order.id,
                    order.product_sku,
                    order.quantity,
                    product_name=order.product_name,
                    unit_price=order.unit_price,
                )
                previous = order.transition_to(OrderStatus.RESERVED)
                await uow.order_repository.save_status(order, previous)
            logger.info(
                "stock_reserved_for_order",
                order_id=order_id,
                sku=reservation.product_sku,
                quantity=reservation.quantity,
                created=created,
            )
        except Exception as exc:
            logger.warning(
                "reserve_stock_failed",
                order_id=order_id,
                error=str(exc),
                retryable=is_retryable(exc),
                final_attempt=final_attempt,
            )
            if final_attempt or not is_retryable(exc):
                await self._mark_failed(order_id)
            raise

    async def process_payment(self, order_id: int) -> Optional[Payment]:
        """
        tx1：新建 processing 支付记录，订单 → payment_processing；
        网关调用期间不持有事务；tx2：支付记录 → completed / failed。
        """
        async with self._uow_factory() as uow:
            order = await self._load(uow, order_id)
            latest = await uow.payment_repository.get_latest_for_order(order.id)
            if latest is not None and latest.is_completed():
                logger.info("payment_skipped_already_completed", order_id=order_id, payment_id=latest.id)
                return latest
            if order.status == OrderStatus.RESERVED:
                previous = order.transition_to(OrderStatus.PAYMENT_PROCESSING)
                await uow.order_repository.save_status(order, previous)
            elif order.status != OrderStatus.PAYMENT_PROCESSING:
                raise InvalidTransitionException(
                    "order", order.status.value, OrderStatus.PAYMENT_PROCESSING.value, entity_id=order_id
                )
            payment = await uow.payment_repository.create(
                Payment.start(order.id, order.total_amount, order.currency)
            )

        request = ChargeRequest(
            order_id=order.id,
            order_reference=order.order_reference,
            amount=order.total_amount,
            currency=order.currency,
            idempotency_key=f"{order.order_reference}:{payment.id}",
        )
        try:
            result = await asyncio.wait_for(self.gateway.charge(request), timeout=self.gateway_timeout)
        except Exception as exc:
            await self._settle_payment(payment.id, None, str(exc) or exc.__class__.__name__)
            logger.warning("payment_gateway_error", order_id=order_id, payment_id=payment.id, error=str(exc))
            raise

        settled = await self._settle_payment(payment.id, result.transaction_id if result.succeeded else None, result.reason)
        if not result.succeeded:
            logger.warning("payment_declined", order_id=order_id, payment_id=payment.id, reason=result.reason)
            raise GatewayDeclinedException("charge", result.reason, reference=order.order_reference)
        logger.info("payment_completed", order_id=order_id, payment_id=payment.id, transaction_id=result.transaction_id)
        return settled

    async def _settle_payment(
        self, payment_id: int, transaction_id: Optional[str], reason: Optional[str]
    ) -> Payment:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if payment.status != PaymentStatus.PROCESSING:
                return payment
            if transaction_id:
                payment.mark_completed(transaction_id)
            else:
                payment.mark_failed(reason)
            return await uow.payment_repository.update(payment)

    async def finalize_order(self, order_id: int) -> None:
        """确认预留并完成订单；提交后再排入成功通知与 order_completed 事件。"""
        async with self._uow_factory() as uow:
            order = await self._load(uow, order_id)
            if order.status == OrderStatus.COMPLETED:
                logger.info("finalize_skipped_already_completed", order_id=order_id)
                return
            latest = await uow.payment_repository.get_latest_for_order(order.id)
            if latest is None or not latest.is_completed():
                raise PaymentNotCompletedException(order_id, latest.status.value if latest else None)
            committed = await self._ledger(uow).commit(order.id)
            previous = order.transition_to(OrderStatus.COMPLETED)
            await uow.order_repository.save_status(order, previous)
            event = OrderCompleted(
                order_id=order.id,
                order_reference=order.order_reference,
                customer_id=order.customer_id,
                total_amount=str(order.total_amount),
            )

        logger.info("order_finalized", order_id=order_id, committed_reservations=len(committed))
        self._notify(order, "success")
        self.task_queue.enqueue(
            TaskNames.ORDER_COMPLETED,
            {
                "event_id": event.event_id,
                "order_id": event.order_id,
                "order_reference": event.order_reference,
                "customer_id": event.customer_id,
                "total_amount": event.total_amount,
                "currency": order.currency,
                "occurred_at": event.occurred_at.isoformat(),
            },
            queue=Queues.EVENTS,
        )

    # ------------------------------------------------------------------ compensation
    async def handle_chain_abandoned(self, order_id: int, *, failed_task: Optional[str] = None) -> bool:
        """
        链被放弃后调用：原子登记补偿并排入 RollbackOrder。

        登记与排队在同一事务中完成，重复调用只会排入一次回滚。
        """
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id, for_update=True)
            if order is None:
                logger.error("compensation_order_missing", order_id=order_id, failed_task=failed_task)
                return False
            if order.status == OrderStatus.COMPLETED:
                logger.warning("compensation_skipped_completed", order_id=order_id, failed_task=failed_task)
                return False
            if not await uow.order_repository.claim_compensation(order.id):
                logger.info("compensation_already_claimed", order_id=order_id, failed_task=failed_task)
                return False
            self.task_queue.enqueue(
                TaskNames.ROLLBACK_ORDER,
                {"order_id": order_id},
                queue=Queues.ORDERS,
                attempts=self.config.step_attempts,
                timeout=self.config.rollback_timeout,
            )
        logger.warning("compensation_requested", order_id=order_id, status=order.status.value, failed_task=failed_task)
        return True

    async def rollback_order(self, order_id: int) -> None:
        """
        补偿：归还预留库存，订单 → rollback（pending 先经 failed）。

        仅当状态确实发生变化时才发送失败通知；异常记录后继续抛出由队列重试。
        """
        try:
            async with self._uow_factory() as uow:
                order = await self._load(uow, order_id)
                released = await self._ledger(uow).release(order.id)
                changed = False
                if order.status == OrderStatus.PENDING:
                    previous = order.transition_to(OrderStatus.FAILED)
                    await uow.order_repository.save_status(order, previous)
                if order.status != OrderStatus.ROLLBACK:
                    previous = order.transition_to(OrderStatus.ROLLBACK)
                    await uow.order_repository.save_status(order, previous)
                    changed = True
                event = OrderRolledBack(
                    order_id=order.id,
                    order_reference=order.order_reference,
                    released_reservations=len(released),
                )
        except Exception as exc:
            logger.error("order_rollback_failed", order_id=order_id, error=str(exc))
            raise

        logger.info(
            "order_rolled_back",
            order_id=order_id,
            released_reservations=event.released_reservations,
            status_changed=changed,
        )
        if changed:
            self._notify(order, "failed")

    # ------------------------------------------------------------------ helpers
    async def _mark_failed(self, order_id: int) -> None:
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id, for_update=True)
            if order is None or not order.can_transition_to(OrderStatus.FAILED):
                return
            previous = order.transition_to(OrderStatus.FAILED)
            await uow.order_repository.save_status(order, previous)
        logger.warning("order_marked_failed", order_id=order_id)

    def _notify(self, order: Order, kind: str) -> Any:
        return self.task_queue.enqueue(
            TaskNames.SEND_ORDER_NOTIFICATION,
            {
                "order_id": order.id,
                "kind": kind,
                "channel": self.config.notification_channel,
                "recipient": self.config.notification_recipient,
            },
            queue=Queues.NOTIFICATIONS,
            delay=self.config.notification_delay_seconds,
        )

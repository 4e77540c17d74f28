"""
Refund application service.

Requests are validated synchronously under the order row lock and persisted
as ``pending``; settlement happens in ``process_refund``, a retryable task
that re-checks the refundable balance and never holds a transaction across
the gateway call.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import RefundGatewayRequest
from application.dtos.refunds import (
    CreateRefundDTO,
    OrderRefundSummaryDTO,
    RefundListQuery,
    RefundPageDTO,
    RefundResponseDTO,
    RefundStatsDTO,
)
from application.ports.payment_gateway import PaymentGateway
from application.ports.task_queue import Queues, TaskNames, TaskQueue
from core.config import RefundSettings, settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import (
    AmountExceedsRefundableException,
    GatewayDeclinedException,
    OrderNotFoundException,
    OrderNotRefundableException,
    RefundNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import quantize_money
from domain.refund.entity import Refund, RefundStatus, RefundType
from domain.refund.events import RefundCompleted, RefundRequested
from domain.refund.repository import RefundFilter
from domain.refund.service import RefundDomainService


logger = get_logger(__name__)


def to_refund_dto(refund: Refund) -> RefundResponseDTO:
    return RefundResponseDTO(
        id=refund.id,
        refund_reference=refund.refund_reference,
        order_reference=refund.order_reference,
        customer_id=refund.customer_id,
        refund_type=refund.refund_type.value,
        refund_amount=refund.refund_amount,
        original_amount=refund.original_amount,
        status=refund.status.value,
        reason=refund.reason,
        description=refund.description,
        payment_method=refund.payment_method,
        transaction_id=refund.transaction_id,
        error_message=refund.error_message,
        requested_at=refund.requested_at,
        processed_at=refund.processed_at,
        metadata=refund.metadata or {},
    )


class RefundApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        task_queue: TaskQueue,
        gateway: PaymentGateway,
        *,
        config: Optional[RefundSettings] = None,
        gateway_timeout: Optional[float] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.task_queue = task_queue
        self.gateway = gateway
        self.config = config or settings.refunds
        self.gateway_timeout = gateway_timeout or payment_settings.request_timeout

    def _domain(self, uow: AbstractUnitOfWork) -> RefundDomainService:
        return RefundDomainService(
            uow.refund_repository, reference_length=self.config.reference_suffix_length
        )

    def _enqueue_processing(self, refund_id: int) -> None:
        self.task_queue.enqueue(
            TaskNames.PROCESS_REFUND,
            {"refund_id": refund_id},
            queue=Queues.REFUNDS,
            attempts=self.config.process_attempts,
            timeout=self.config.process_timeout,
        )

    # ------------------------------------------------------------------ request
    async def request_refund(self, dto: CreateRefundDTO) -> RefundResponseDTO:
        """
        校验并登记退款（pending），提交后排入处理任务。

        校验失败同步抛出，不会进入队列。
        """
        amount = quantize_money(dto.amount)
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_reference(dto.order_reference, for_update=True)
            if order is None:
                raise OrderNotFoundException(reference=dto.order_reference)
            domain = self._domain(uow)
            refund = await domain.create_refund(
                order,
                amount,
                RefundType(dto.refund_type),
                reason=dto.reason,
                description=dto.description,
                payment_method=dto.payment_method or self.config.default_payment_method,
                metadata=dto.metadata,
            )
            requested = next(e for e in domain.clear_events() if isinstance(e, RefundRequested))

        self._enqueue_processing(refund.id)
        self.task_queue.enqueue(
            TaskNames.REFUND_REQUESTED,
            {
                "event_id": requested.event_id,
                "refund_id": requested.refund_id,
                "refund_reference": requested.refund_reference,
                "order_id": requested.order_id,
                "amount": requested.amount,
                "occurred_at": requested.occurred_at.isoformat(),
            },
            queue=Queues.EVENTS,
        )
        logger.info(
            "refund_requested",
            refund_id=refund.id,
            refund_reference=refund.refund_reference,
            order_reference=refund.order_reference,
            amount=str(refund.refund_amount),
            refund_type=refund.refund_type.value,
        )
        return to_refund_dto(refund)

    # ------------------------------------------------------------------ processing
    async def process_refund(self, refund_id: int, *, final_attempt: bool = True) -> RefundResponseDTO:
        """
        处理退款：已结算（completed/cancelled/failed）直接返回；
        复核可退金额 → processing → 网关 → completed，或记录错误后抛出（最后一次尝试置为 failed）。
        """
        validation_error: Optional[Exception] = None
        async with self._uow_factory() as uow:
            refund = await uow.refund_repository.get_by_id(refund_id, for_update=True)
            if refund is None:
                raise RefundNotFoundException(refund_id)
            if refund.is_settled():
                logger.info("refund_processing_skipped", refund_id=refund_id, status=refund.status.value)
                return to_refund_dto(refund)
            order = await uow.order_repository.get_by_id(refund.order_id, for_update=True)
            if order is None:
                raise OrderNotFoundException(refund.order_id)
            # 先写 processing 再复核：并发处理的另一笔退款必然在复核时可见
            refund.mark_processing()
            refund = await uow.refund_repository.update(refund)
            try:
                await self._domain(uow).revalidate(refund, order)
            except (AmountExceedsRefundableException, OrderNotRefundableException) as exc:
                refund.mark_failed(exc.message)
                refund = await uow.refund_repository.update(refund)
                validation_error = exc

        if validation_error is not None:
            logger.warning("refund_rejected_on_processing", refund_id=refund_id, error=str(validation_error))
            raise validation_error

        request = RefundGatewayRequest(
            refund_reference=refund.refund_reference,
            order_reference=refund.order_reference,
            amount=refund.refund_amount,
            currency=order.currency,
            payment_method=refund.payment_method,
            idempotency_key=refund.refund_reference,
        )
        try:
            result = await asyncio.wait_for(self.gateway.refund(request), timeout=self.gateway_timeout)
        except Exception as exc:
            await self._record_failure(refund_id, str(exc) or exc.__class__.__name__, final_attempt)
            raise

        if not result.succeeded:
            await self._record_failure(refund_id, result.reason, final_attempt)
            raise GatewayDeclinedException("refund", result.reason, reference=refund.refund_reference)

        event: Optional[RefundCompleted] = None
        async with self._uow_factory() as uow:
            refund = await uow.refund_repository.get_by_id(refund_id, for_update=True)
            if refund.status == RefundStatus.PROCESSING:
                domain = self._domain(uow)
                refund = await domain.complete(refund, result.transaction_id)
                event = next(e for e in domain.clear_events() if isinstance(e, RefundCompleted))

        if event is None:
            logger.info("refund_already_settled", refund_id=refund_id, status=refund.status.value)
            return to_refund_dto(refund)

        logger.info(
            "refund_completed",
            refund_id=refund_id,
            refund_reference=refund.refund_reference,
            transaction_id=refund.transaction_id,
        )
        self.task_queue.enqueue(
            TaskNames.REFUND_COMPLETED,
            {
                "event_id": event.event_id,
                "refund_id": event.refund_id,
                "refund_reference": event.refund_reference,
                "order_id": event.order_id,
                "customer_id": event.customer_id,
                "amount": event.amount,
                "refund_type": event.refund_type,
                "occurred_at": event.occurred_at.isoformat(),
            },
            queue=Queues.EVENTS,
        )
        return to_refund_dto(refund)

    async def _record_failure(self, refund_id: int, message: Optional[str], final_attempt: bool) -> None:
        async with self._uow_factory() as uow:
            refund = await uow.refund_repository.get_by_id(refund_id, for_update=True)
            if refund is None or refund.status != RefundStatus.PROCESSING:
                return
            if final_attempt:
                refund.mark_failed(message)
            else:
                refund.record_error(message or "")
            await uow.refund_repository.update(refund)
        logger.warning(
            "refund_attempt_failed",
            refund_id=refund_id,
            error=message,
            final_attempt=final_attempt,
        )

    # ------------------------------------------------------------------ operator actions
    async def _get_for_update(self, uow: AbstractUnitOfWork, refund_reference: str) -> Refund:
        refund = await uow.refund_repository.get_by_reference(refund_reference, for_update=True)
        if refund is None:
            raise RefundNotFoundException(reference=refund_reference)
        return refund

    async def cancel_refund(self, refund_reference: str) -> RefundResponseDTO:
        """仅 pending 状态可取消"""
        async with self._uow_factory() as uow:
            refund = await self._get_for_update(uow, refund_reference)
            refund.cancel()
            refund = await uow.refund_repository.update(refund)
        logger.info("refund_cancelled", refund_reference=refund_reference)
        return to_refund_dto(refund)

    async def retry_refund(self, refund_reference: str) -> RefundResponseDTO:
        """failed → pending，并重新排入处理任务"""
        async with self._uow_factory() as uow:
            refund = await self._get_for_update(uow, refund_reference)
            refund.reset_for_retry()
            refund = await uow.refund_repository.update(refund)
        self._enqueue_processing(refund.id)
        logger.info("refund_retry_queued", refund_reference=refund_reference)
        return to_refund_dto(refund)

    # ------------------------------------------------------------------ queries
    async def get_refund(self, refund_reference: str) -> RefundResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            refund = await uow.refund_repository.get_by_reference(refund_reference)
        if refund is None:
            raise RefundNotFoundException(reference=refund_reference)
        return to_refund_dto(refund)

    async def list_refunds(self, query: RefundListQuery) -> RefundPageDTO:
        size = min(query.size or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        filters = RefundFilter(
            status=RefundStatus(query.status) if query.status else None,
            refund_type=RefundType(query.refund_type) if query.refund_type else None,
            customer_id=query.customer_id,
            order_reference=query.order_reference,
            from_date=query.from_date,
            to_date=query.to_date,
        )
        async with self._uow_factory(readonly=True) as uow:
            items, total = await uow.refund_repository.search(
                filters, skip=(query.page - 1) * size, limit=size
            )
        return RefundPageDTO(
            items=[to_refund_dto(r) for r in items], total=total, page=query.page, size=size
        )

    async def order_refund_summary(self, order_reference: str) -> OrderRefundSummaryDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_reference(order_reference)
            if order is None:
                raise OrderNotFoundException(reference=order_reference)
            refunded = await uow.refund_repository.sum_amount(order.id, [RefundStatus.COMPLETED])
            refunds = await uow.refund_repository.list_by_order(order.id)
        refundable = order.total_amount - refunded
        return OrderRefundSummaryDTO(
            order_reference=order.order_reference,
            total_amount=order.total_amount,
            total_refunded=refunded,
            refundable_amount=refundable,
            is_fully_refunded=refundable <= 0,
            refunds=[to_refund_dto(r) for r in refunds],
        )

    async def refund_stats(self) -> RefundStatsDTO:
        async with self._uow_factory(readonly=True) as uow:
            repo = uow.refund_repository
            counts = {s: await repo.count_by(status=s) for s in RefundStatus}
            total = await repo.count_by()
            partial = await repo.count_by(refund_type=RefundType.PARTIAL)
            full = await repo.count_by(refund_type=RefundType.FULL)
            completed_sum = await repo.sum_by(status=RefundStatus.COMPLETED)
            partial_sum = await repo.sum_by(status=RefundStatus.COMPLETED, refund_type=RefundType.PARTIAL)
            full_sum = await repo.sum_by(status=RefundStatus.COMPLETED, refund_type=RefundType.FULL)

        completed = counts[RefundStatus.COMPLETED]
        average = quantize_money(completed_sum / completed) if completed else Decimal("0.00")
        return RefundStatsDTO(
            total_refunds=total,
            completed_refunds=completed,
            pending_refunds=counts[RefundStatus.PENDING],
            processing_refunds=counts[RefundStatus.PROCESSING],
            failed_refunds=counts[RefundStatus.FAILED],
            cancelled_refunds=counts[RefundStatus.CANCELLED],
            partial_refunds=partial,
            full_refunds=full,
            total_refund_amount=completed_sum,
            average_refund_amount=average,
            partial_amount=partial_sum,
            full_amount=full_sum,
        )

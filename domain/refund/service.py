"""
退款领域服务 - 可退金额校验与退款状态流转
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from domain.common.exceptions import (
    AmountExceedsRefundableException,
    FullRefundMismatchException,
    OrderNotRefundableException,
)
from domain.order.entity import Order
from .entity import Refund, RefundStatus, RefundType, generate_refund_reference
from .events import RefundCompleted, RefundRequested
from .repository import RefundRepository


class RefundDomainService:
    """
    退款领域服务

    职责：
    1. 计算订单可退金额（total − Σ completed）
    2. 请求阶段校验：订单状态、金额上限、全额退款必须等于可退金额
    3. 处理阶段复核：排除自身行，并计入其他处理中的退款
    4. 产生领域事件
    """

    def __init__(self, refund_repository: RefundRepository, *, reference_length: int = 6):
        self.refund_repository = refund_repository
        self.reference_length = reference_length
        self.events: List = []  # 领域事件收集

    async def refundable_amount(self, order: Order) -> Decimal:
        refunded = await self.refund_repository.sum_amount(order.id, [RefundStatus.COMPLETED])
        return order.total_amount - refunded

    async def create_refund(
        self,
        order: Order,
        amount: Decimal,
        refund_type: RefundType,
        *,
        reason: Optional[str] = None,
        description: Optional[str] = None,
        payment_method: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Refund:
        """
        校验并持久化 pending 退款。调用方需已对订单行加锁。

        业务规则：
        1. 仅 completed 订单可退款
        2. amount <= refundable
        3. full 类型必须 amount == refundable
        """
        if not order.is_refundable():
            raise OrderNotRefundableException(order.order_reference, order.status.value)

        refund_type = RefundType(refund_type)
        refundable = await self.refundable_amount(order)
        if amount > refundable:
            raise AmountExceedsRefundableException(amount, refundable)
        if refund_type == RefundType.FULL and amount != refundable:
            raise FullRefundMismatchException(amount, refundable)

        now = datetime.now(timezone.utc)
        refund = Refund(
            id=None,
            refund_reference=generate_refund_reference(
                order.order_reference, self.reference_length
            ),
            order_id=order.id,
            order_reference=order.order_reference,
            customer_id=order.customer_id,
            refund_type=refund_type,
            refund_amount=amount,
            original_amount=order.total_amount,
            status=RefundStatus.PENDING,
            reason=reason,
            description=description,
            payment_method=payment_method,
            requested_at=now,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )
        created = await self.refund_repository.create(refund)
        self.events.append(RefundRequested(
            refund_id=created.id,
            refund_reference=created.refund_reference,
            order_id=created.order_id,
            amount=str(created.refund_amount),
        ))
        return created

    async def revalidate(self, refund: Refund, order: Order) -> Decimal:
        """
        处理阶段复核，返回本退款之外仍可退的金额。

        排除本退款自身行；其他 processing 中的退款也计入，防止并发处理超退。
        """
        if not order.is_refundable():
            raise OrderNotRefundableException(order.order_reference, order.status.value)
        committed = await self.refund_repository.sum_amount(
            order.id,
            [RefundStatus.COMPLETED, RefundStatus.PROCESSING],
            exclude_id=refund.id,
        )
        available = order.total_amount - committed
        if refund.refund_amount > available:
            raise AmountExceedsRefundableException(refund.refund_amount, available)
        return available

    async def complete(self, refund: Refund, transaction_id: str) -> Refund:
        refund.mark_completed(transaction_id)
        updated = await self.refund_repository.update(refund)
        self.events.append(RefundCompleted(
            refund_id=updated.id,
            refund_reference=updated.refund_reference,
            order_id=updated.order_id,
            customer_id=updated.customer_id,
            amount=str(updated.refund_amount),
            refund_type=updated.refund_type.value,
            transaction_id=transaction_id,
        ))
        return updated

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events

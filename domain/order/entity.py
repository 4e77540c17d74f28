"""
订单领域实体 - 订单聚合根与状态机
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidTransitionException

CENT = Decimal("0.01")


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"                        # 待处理
    RESERVED = "reserved"                      # 已预留库存
    PAYMENT_PROCESSING = "payment_processing"  # 支付中
    COMPLETED = "completed"                    # 已完成
    FAILED = "failed"                          # 失败（待补偿）
    ROLLBACK = "rollback"                      # 已补偿回滚


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.RESERVED, OrderStatus.FAILED}),
    OrderStatus.RESERVED: frozenset(
        {OrderStatus.PAYMENT_PROCESSING, OrderStatus.FAILED, OrderStatus.ROLLBACK}
    ),
    OrderStatus.PAYMENT_PROCESSING: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.FAILED, OrderStatus.ROLLBACK}
    ),
    OrderStatus.FAILED: frozenset({OrderStatus.ROLLBACK}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.ROLLBACK: frozenset(),
}

# Saga 的终态；completed 订单仍可退款，但状态不再变化
TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.ROLLBACK})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 数量必须大于0，单价不能为负
    2. total_amount 在创建时计算（quantity × unit_price），下游步骤不得重算
    3. 状态只能按 ALLOWED_TRANSITIONS 迁移
    """

    id: Optional[int]
    order_reference: str
    customer_id: int
    customer_name: str
    product_sku: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    currency: str = "USD"
    status: OrderStatus = OrderStatus.PENDING
    order_date: Optional[datetime] = None
    compensation_requested_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.order_reference:
            raise DomainValidationException("订单号不能为空", field="order_reference")
        if self.quantity <= 0:
            raise DomainValidationException(
                f"订单数量必须大于0: {self.quantity}", field="quantity"
            )
        if self.unit_price < 0:
            raise DomainValidationException(
                f"单价不能为负: {self.unit_price}", field="unit_price"
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        self.status = OrderStatus(self.status)
        self.order_date = _ensure_utc(self.order_date)
        self.compensation_requested_at = _ensure_utc(self.compensation_requested_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def create(
        cls,
        *,
        order_reference: str,
        customer_id: int,
        customer_name: str,
        product_sku: str,
        product_name: str,
        quantity: int,
        unit_price: Decimal,
        currency: str = "USD",
        order_date: Optional[datetime] = None,
    ) -> "Order":
        """新建待处理订单，总金额在此一次性确定。"""
        now = datetime.now(timezone.utc)
        unit_price = quantize_money(unit_price)
        return cls(
            id=None,
            order_reference=order_reference,
            customer_id=customer_id,
            customer_name=customer_name,
            product_sku=product_sku,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            total_amount=quantize_money(unit_price * quantity),
            currency=currency,
            status=OrderStatus.PENDING,
            order_date=order_date or now,
            created_at=now,
            updated_at=now,
        )

    def can_transition_to(self, target: OrderStatus) -> bool:
        return OrderStatus(target) in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: OrderStatus) -> OrderStatus:
        """执行状态迁移，返回迁移前的状态（用于持久化时的乐观校验）。"""
        target = OrderStatus(target)
        if not self.can_transition_to(target):
            raise InvalidTransitionException(
                "order", self.status.value, target.value, entity_id=self.id
            )
        previous = self.status
        self.status = target
        self.updated_at = datetime.now(timezone.utc)
        return previous

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_refundable(self) -> bool:
        return self.status == OrderStatus.COMPLETED

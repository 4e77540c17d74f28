"""
支付领域实体 - 每次扣款尝试一条记录
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.order.entity import _ensure_utc


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PROCESSING = "processing"  # 处理中
    COMPLETED = "completed"    # 支付成功
    FAILED = "failed"          # 支付失败


@dataclass
class Payment:
    """
    支付记录

    业务规则：
    1. 金额不能为负，货币代码为3位字母
    2. 只能从 processing 转为 completed / failed
    3. 重试会新建记录，FinalizeOrder 只看最新一条
    """

    id: Optional[int]
    order_id: int
    amount: Decimal
    currency: str
    status: PaymentStatus = PaymentStatus.PROCESSING
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount < 0:
            raise DomainValidationException(f"支付金额不能为负: {self.amount}", field="amount")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        self.status = PaymentStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)

    @classmethod
    def start(cls, order_id: int, amount: Decimal, currency: str) -> "Payment":
        now = datetime.now(timezone.utc)
        return cls(
            id=None,
            order_id=order_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PROCESSING,
            created_at=now,
            updated_at=now,
        )

    def mark_completed(self, transaction_id: str) -> None:
        """标记支付成功"""
        if self.status != PaymentStatus.PROCESSING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 completed", field="status"
            )
        self.status = PaymentStatus.COMPLETED
        self.transaction_id = transaction_id
        self.paid_at = datetime.now(timezone.utc)
        self.updated_at = self.paid_at
        self.error_message = None

    def mark_failed(self, reason: Optional[str] = None) -> None:
        """标记支付失败"""
        if self.status != PaymentStatus.PROCESSING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 failed", field="status"
            )
        self.status = PaymentStatus.FAILED
        self.error_message = reason
        self.updated_at = datetime.now(timezone.utc)

    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

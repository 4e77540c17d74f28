"""
退款领域实体
"""
from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, RefundStateException
from domain.order.entity import _ensure_utc, quantize_money

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RefundType(str, Enum):
    PARTIAL = "partial"
    FULL = "full"


# 处理任务遇到这些状态直接返回（failed 需要人工 retry 才会重新进入）
SETTLED_STATUSES = frozenset(
    {RefundStatus.COMPLETED, RefundStatus.CANCELLED, RefundStatus.FAILED}
)


def generate_refund_reference(order_reference: str, length: int = 6) -> str:
    """REF-<订单号>-<大写随机串>"""
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(length))
    return f"REF-{order_reference}-{suffix}"


@dataclass
class Refund:
    """
    退款实体

    状态机：
        pending → processing → completed
        pending → cancelled（仅用户在 pending 时取消）
        pending|processing → failed（网关拒绝且重试耗尽）
        failed → pending（仅人工重试）
    """

    id: Optional[int]
    refund_reference: str
    order_id: int
    order_reference: str
    customer_id: int
    refund_type: RefundType
    refund_amount: Decimal
    original_amount: Decimal
    status: RefundStatus = RefundStatus.PENDING
    reason: Optional[str] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.refund_amount is None or self.refund_amount <= 0:
            raise DomainValidationException(
                f"退款金额必须大于0: {self.refund_amount}", field="refund_amount"
            )
        self.refund_amount = quantize_money(self.refund_amount)
        self.original_amount = quantize_money(self.original_amount)
        self.refund_type = RefundType(self.refund_type)
        self.status = RefundStatus(self.status)
        self.requested_at = _ensure_utc(self.requested_at)
        self.processed_at = _ensure_utc(self.processed_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        if self.metadata is None:
            self.metadata = {}

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    def mark_processing(self) -> None:
        """pending → processing；重投时 processing 保持不变"""
        if self.status not in (RefundStatus.PENDING, RefundStatus.PROCESSING):
            raise RefundStateException(self.refund_reference, self.status.value, "processed")
        self.status = RefundStatus.PROCESSING
        self._touch()

    def mark_completed(self, transaction_id: str) -> None:
        if self.status != RefundStatus.PROCESSING:
            raise RefundStateException(self.refund_reference, self.status.value, "completed")
        self.status = RefundStatus.COMPLETED
        self.transaction_id = transaction_id
        self.error_message = None
        self.processed_at = datetime.now(timezone.utc)
        self.updated_at = self.processed_at

    def record_error(self, message: str) -> None:
        """记录本次尝试的错误，状态不变（等待重试）"""
        self.error_message = message
        self._touch()

    def mark_failed(self, message: Optional[str] = None) -> None:
        if self.status not in (RefundStatus.PENDING, RefundStatus.PROCESSING, RefundStatus.FAILED):
            raise RefundStateException(self.refund_reference, self.status.value, "failed")
        self.status = RefundStatus.FAILED
        if message is not None:
            self.error_message = message
        self._touch()

    def cancel(self) -> None:
        if self.status != RefundStatus.PENDING:
            raise RefundStateException(self.refund_reference, self.status.value, "cancelled")
        self.status = RefundStatus.CANCELLED
        self._touch()

    def reset_for_retry(self) -> None:
        if self.status != RefundStatus.FAILED:
            raise RefundStateException(self.refund_reference, self.status.value, "retried")
        self.status = RefundStatus.PENDING
        self.error_message = None
        self._touch()

    @property
    def refund_percentage(self) -> float:
        if self.original_amount <= 0:
            return 0.0
        return float(self.refund_amount / self.original_amount * 100)

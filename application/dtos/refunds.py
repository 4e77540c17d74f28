"""
退款 DTO
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import ConfigDict, Field
from pydantic.types import condecimal

from .base import DTOBase


class CreateRefundDTO(DTOBase):
    """退款申请：{订单号, 金额, 类型, 原因?, 描述?}"""
    order_reference: str = Field(..., min_length=1, description="业务订单号")
    amount: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    refund_type: Literal["partial", "full"]
    reason: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    payment_method: Optional[str] = Field(None, max_length=100)
    metadata: Optional[dict[str, Any]] = None


class RefundResponseDTO(DTOBase):
    id: int
    refund_reference: str
    order_reference: str
    customer_id: int
    refund_type: str
    refund_amount: Decimal
    original_amount: Decimal
    status: str
    reason: Optional[str] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    requested_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class RefundListQuery(DTOBase):
    status: Optional[Literal["pending", "processing", "completed", "failed", "cancelled"]] = None
    refund_type: Optional[Literal["partial", "full"]] = None
    customer_id: Optional[int] = None
    order_reference: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    page: int = Field(default=1, ge=1)
    size: Optional[int] = Field(default=None, ge=1)


class RefundPageDTO(DTOBase):
    items: List[RefundResponseDTO]
    total: int
    page: int
    size: int


class OrderRefundSummaryDTO(DTOBase):
    order_reference: str
    total_amount: Decimal
    total_refunded: Decimal
    refundable_amount: Decimal
    is_fully_refunded: bool
    refunds: List[RefundResponseDTO] = Field(default_factory=list)


class RefundStatsDTO(DTOBase):
    total_refunds: int
    completed_refunds: int
    pending_refunds: int
    processing_refunds: int
    failed_refunds: int
    cancelled_refunds: int
    partial_refunds: int
    full_refunds: int
    total_refund_amount: Decimal
    average_refund_amount: Decimal
    partial_amount: Decimal
    full_amount: Decimal

"""
订单 DTO
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.types import condecimal

from .base import DTOBase
from .payments import ISO_4217


class CreateOrderDTO(DTOBase):
    """下单请求（来自导入或 API）"""
    order_reference: str = Field(..., min_length=1, max_length=100, description="业务订单号")
    customer_id: int = Field(..., ge=1)
    customer_name: str = Field(..., min_length=1, max_length=200)
    product_sku: str = Field(..., min_length=1, max_length=64)
    product_name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0)
    unit_price: condecimal(ge=0, decimal_places=2)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    order_date: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def _validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if u not in ISO_4217:
            raise ValueError("unsupported currency")
        return u


class OrderSummaryDTO(DTOBase):
    id: int
    order_reference: str
    customer_id: int
    customer_name: str
    product_sku: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    currency: str
    status: str
    order_date: Optional[datetime] = None
    latest_payment_status: Optional[str] = None
    latest_transaction_id: Optional[str] = None
    total_refunded: Decimal = Decimal("0.00")
    refundable_amount: Decimal = Decimal("0.00")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

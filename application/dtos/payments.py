"""
Payment gateway DTOs (Pydantic v2) used at the gateway port boundary.
"""
from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.types import condecimal

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class ChargeRequest(BaseModel):
    order_id: int
    order_reference: str
    amount: condecimal(ge=0)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    # 同一幂等键的重复调用返回首次成功结果，不会重复扣款
    idempotency_key: str

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class ChargeResult(BaseModel):
    succeeded: bool
    transaction_id: Optional[str] = None
    reason: Optional[str] = None
    provider: str = "simulated"


class RefundGatewayRequest(BaseModel):
    refund_reference: str
    order_reference: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    payment_method: Optional[str] = None
    idempotency_key: str

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency_refund(cls, v: str) -> str:
        return _validate_currency(v)


class RefundGatewayResult(BaseModel):
    succeeded: bool
    transaction_id: Optional[str] = None
    reason: Optional[str] = None
    provider: str = "simulated"

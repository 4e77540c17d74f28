"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    RefundGatewayRequest,
    RefundGatewayResult,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for charging orders and settling refunds.

    A decline is reported through ``succeeded=False``; transport problems
    (timeouts, connection errors) are raised. Implementations never touch
    order, payment or refund rows.
    """

    provider: str

    async def charge(self, req: ChargeRequest) -> ChargeResult: ...

    async def refund(self, req: RefundGatewayRequest) -> RefundGatewayResult: ...

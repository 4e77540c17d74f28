"""
Simulated payment gateway.

Models an external charge/refund API: a bounded random latency and a fixed
success probability. Successful results are memoized per idempotency key so
a redelivered call never charges or refunds twice within the process;
declines are not cached, a retry reaches the simulated provider again.
"""
from __future__ import annotations

import asyncio
import random
import string
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from application.dtos.payments import (
    ChargeRequest,
    ChargeResult,
    RefundGatewayRequest,
    RefundGatewayResult,
)
from core.logging_config import get_logger
from core.settings import SimulatedGatewaySettings, payment_settings
from shared.codes.payment_codes import DECLINE_REASONS


logger = get_logger(__name__)

_ALPHANUM = string.ascii_uppercase + string.digits


class SimulatedPaymentGateway:
    provider: str = "simulated"

    def __init__(
        self,
        *,
        charge_success_rate: Optional[float] = None,
        refund_success_rate: Optional[float] = None,
        min_latency: Optional[float] = None,
        max_latency: Optional[float] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        config: Optional[SimulatedGatewaySettings] = None,
    ) -> None:
        cfg = config or payment_settings.simulated
        self.charge_success_rate = cfg.charge_success_rate if charge_success_rate is None else charge_success_rate
        self.refund_success_rate = cfg.refund_success_rate if refund_success_rate is None else refund_success_rate
        self.min_latency = cfg.latency.min_seconds if min_latency is None else min_latency
        self.max_latency = cfg.latency.max_seconds if max_latency is None else max_latency
        if self.min_latency < 0 or self.max_latency < self.min_latency:
            raise ValueError("gateway latency bounds must satisfy 0 <= min <= max")
        self._rng = rng or random.Random(cfg.seed)
        self._sleep = sleep
        self._results: dict[str, ChargeResult | RefundGatewayResult] = {}
        self.calls: list[tuple[str, str]] = []

    async def charge(self, req: ChargeRequest) -> ChargeResult:
        key = f"charge:{req.idempotency_key}"
        if key in self._results:
            self._log("gateway_charge_replayed", order_reference=req.order_reference, idempotency_key=req.idempotency_key)
            return self._results[key]  # type: ignore[return-value]

        self.calls.append(("charge", req.idempotency_key))
        await self._simulate_latency()
        if self._rng.random() < self.charge_success_rate:
            result = ChargeResult(succeeded=True, transaction_id=self._transaction_id("TXN-", 16))
        else:
            result = ChargeResult(succeeded=False, reason=DECLINE_REASONS["charge"])
        if result.succeeded:
            self._results[key] = result
        self._log(
            "gateway_charge",
            order_reference=req.order_reference,
            amount=str(Decimal(req.amount)),
            currency=req.currency,
            succeeded=result.succeeded,
            transaction_id=result.transaction_id,
        )
        return result

    async def refund(self, req: RefundGatewayRequest) -> RefundGatewayResult:
        key = f"refund:{req.idempotency_key}"
        if key in self._results:
            self._log("gateway_refund_replayed", refund_reference=req.refund_reference)
            return self._results[key]  # type: ignore[return-value]

        self.calls.append(("refund", req.idempotency_key))
        await self._simulate_latency()
        if self._rng.random() < self.refund_success_rate:
            result = RefundGatewayResult(succeeded=True, transaction_id=self._transaction_id("REF-", 12))
        else:
            result = RefundGatewayResult(succeeded=False, reason=DECLINE_REASONS["refund"])
        if result.succeeded:
            self._results[key] = result
        self._log(
            "gateway_refund",
            refund_reference=req.refund_reference,
            amount=str(Decimal(req.amount)),
            succeeded=result.succeeded,
            transaction_id=result.transaction_id,
        )
        return result

    async def _simulate_latency(self) -> None:
        delay = self._rng.uniform(self.min_latency, self.max_latency)
        if delay > 0:
            await self._sleep(delay)

    def _transaction_id(self, prefix: str, length: int) -> str:
        return prefix + "".join(self._rng.choice(_ALPHANUM) for _ in range(length))

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)

"""
Refund domain events.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid


@dataclass
class RefundEvent:
    refund_id: int
    refund_reference: str
    order_id: int
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class RefundRequested(RefundEvent):
    amount: str = ""


@dataclass
class RefundCompleted(RefundEvent):
    customer_id: int = 0
    amount: str = ""
    refund_type: str = ""
    transaction_id: str = ""

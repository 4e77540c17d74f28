"""
Order domain events.

Facts emitted by saga steps; the application layer turns them into
notification / metrics tasks after the owning transaction commits.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid


@dataclass
class OrderEvent:
    order_id: int
    order_reference: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderCompleted(OrderEvent):
    customer_id: int = 0
    total_amount: str = ""


@dataclass
class OrderRolledBack(OrderEvent):
    released_reservations: int = 0

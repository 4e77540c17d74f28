"""
库存领域实体 - 商品库存与库存预留
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, ReservationStateException
from domain.order.entity import _ensure_utc


class ReservationStatus(str, Enum):
    RESERVED = "reserved"    # 已扣减库存，等待订单完成
    COMMITTED = "committed"  # 订单完成，终态
    RELEASED = "released"    # 已归还库存，终态


@dataclass
class Product:
    """商品库存记录；stock_quantity 永不为负"""

    id: Optional[int]
    sku: str
    name: str
    price: Decimal
    stock_quantity: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.sku:
            raise DomainValidationException("SKU 不能为空", field="sku")
        if self.stock_quantity < 0:
            raise DomainValidationException(
                f"库存不能为负: {self.stock_quantity}", field="stock_quantity"
            )
        if self.price < 0:
            raise DomainValidationException(f"价格不能为负: {self.price}", field="price")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def has_stock(self, quantity: int) -> bool:
        return self.stock_quantity >= quantity


@dataclass
class StockReservation:
    """
    库存预留记录

    业务规则：
    1. 每个 (order_id, product_sku) 仅一条
    2. committed / released 为终态，不可再迁移
    """

    id: Optional[int]
    order_id: int
    product_sku: str
    quantity: int
    status: ReservationStatus = ReservationStatus.RESERVED
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise DomainValidationException(
                f"预留数量必须大于0: {self.quantity}", field="quantity"
            )
        self.status = ReservationStatus(self.status)
        self.expires_at = _ensure_utc(self.expires_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def new(cls, order_id: int, sku: str, quantity: int, *, ttl_minutes: int) -> "StockReservation":
        now = datetime.now(timezone.utc)
        return cls(
            id=None,
            order_id=order_id,
            product_sku=sku,
            quantity=quantity,
            status=ReservationStatus.RESERVED,
            expires_at=now + timedelta(minutes=ttl_minutes),
            created_at=now,
            updated_at=now,
        )

    def is_active(self) -> bool:
        return self.status == ReservationStatus.RESERVED

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def commit(self) -> None:
        if self.status != ReservationStatus.RESERVED:
            raise ReservationStateException(self.id, self.status.value, "committed")
        self.status = ReservationStatus.COMMITTED
        self.updated_at = datetime.now(timezone.utc)

    def release(self) -> None:
        if self.status != ReservationStatus.RESERVED:
            raise ReservationStateException(self.id, self.status.value, "released")
        self.status = ReservationStatus.RELEASED
        self.updated_at = datetime.now(timezone.utc)

"""
库存数据库模型：商品与库存预留
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint, Index
)
from datetime import datetime, timezone

from .base import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(64), unique=True, index=True, nullable=False, comment="商品SKU")
    name = Column(String(200), nullable=False, comment="商品名称")
    price = Column(Numeric(precision=10, scale=2), nullable=False, default=0, comment="单价")
    stock_quantity = Column(Integer, nullable=False, default=0, comment="可用库存")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        # 数据库层兜底：库存永不为负
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    def __repr__(self):
        return f"<ProductModel(sku='{self.sku}', stock_quantity={self.stock_quantity})>"


class StockReservationModel(Base):
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="订单ID"
    )
    product_sku = Column(String(64), nullable=False, comment="商品SKU")
    quantity = Column(Integer, nullable=False, comment="预留数量")
    status = Column(
        String(32),
        nullable=False,
        default="reserved",
        comment="预留状态: reserved/committed/released"
    )
    expires_at = Column(DateTime(timezone=True), nullable=True, comment="预留过期时间")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        UniqueConstraint("order_id", "product_sku", name="uq_stock_reservations_order_sku"),
        CheckConstraint("quantity > 0", name="ck_stock_reservations_quantity_positive"),
        Index("ix_stock_reservations_order_status", "order_id", "status"),
    )

    def __repr__(self):
        return (
            f"<StockReservationModel(order_id={self.order_id}, sku='{self.product_sku}', "
            f"quantity={self.quantity}, status='{self.status}')>"
        )

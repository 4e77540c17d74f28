"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Index, CheckConstraint
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 业务订单号
    order_reference = Column(String(100), unique=True, index=True, nullable=False, comment="业务订单号")

    # 客户信息
    customer_id = Column(Integer, nullable=False, index=True, comment="客户ID")
    customer_name = Column(String(200), nullable=False, comment="客户名称")

    # 商品信息
    product_sku = Column(String(64), nullable=False, comment="商品SKU")
    product_name = Column(String(200), nullable=False, comment="商品名称")
    quantity = Column(Integer, nullable=False, comment="数量")
    unit_price = Column(Numeric(precision=10, scale=2), nullable=False, comment="单价")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")
    total_amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="订单总额（创建时确定）")

    # 状态
    status = Column(
        String(32),
        nullable=False,
        default="pending",
        index=True,
        comment="订单状态: pending/reserved/payment_processing/completed/failed/rollback"
    )
    compensation_requested_at = Column(DateTime(timezone=True), nullable=True, comment="补偿登记时间")

    # 时间戳
    order_date = Column(DateTime(timezone=True), nullable=False, index=True, comment="下单时间")
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
        CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
        Index("ix_orders_customer_status", "customer_id", "status"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, order_reference='{self.order_reference}', "
            f"status='{self.status}', total_amount={self.total_amount})>"
        )

"""
退款数据库模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class RefundModel(Base):
    """
    退款数据库模型

    所有业务规则都在 domain.refund.entity.Refund 中
    """
    __tablename__ = "refunds"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 退款单号
    refund_reference = Column(String(120), unique=True, index=True, nullable=False, comment="退款单号")

    # 关联订单
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="订单ID"
    )
    order_reference = Column(String(100), nullable=False, index=True, comment="业务订单号（冗余，便于查询）")
    customer_id = Column(Integer, nullable=False, index=True, comment="客户ID")

    # 金额信息
    refund_type = Column(String(16), nullable=False, comment="退款类型: partial/full")
    refund_amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="退款金额")
    original_amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="申请时订单总额快照")

    # 退款说明
    reason = Column(String(255), nullable=True, comment="退款原因")
    description = Column(Text, nullable=True, comment="退款描述")
    payment_method = Column(String(100), nullable=True, comment="退款方式")

    # 状态
    status = Column(
        String(32),
        nullable=False,
        default="pending",
        index=True,
        comment="退款状态: pending/processing/completed/failed/cancelled"
    )
    transaction_id = Column(String(64), nullable=True, comment="网关退款交易号")
    error_message = Column(Text, nullable=True, comment="失败原因")

    # 时间戳
    requested_at = Column(DateTime(timezone=True), nullable=False, index=True, comment="申请时间")
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="处理完成时间")
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

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    __table_args__ = (
        Index("ix_refunds_order_status", "order_id", "status"),
    )

    def __repr__(self):
        return (
            f"<RefundModel(id={self.id}, refund_reference='{self.refund_reference}', "
            f"amount={self.refund_amount}, status='{self.status}')>"
        )

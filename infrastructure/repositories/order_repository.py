"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import (
    InvalidTransitionException,
    OrderAlreadyExistsException,
    OrderNotFoundException,
)
from domain.order.entity import Order, OrderStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_reference=model.order_reference,
            customer_id=model.customer_id,
            customer_name=model.customer_name,
            product_sku=model.product_sku,
            product_name=model.product_name,
            quantity=model.quantity,
            unit_price=Decimal(str(model.unit_price)),
            total_amount=Decimal(str(model.total_amount)),
            currency=model.currency,
            status=OrderStatus(model.status),
            order_date=model.order_date,
            compensation_requested_at=model.compensation_requested_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            order_reference=entity.order_reference,
            customer_id=entity.customer_id,
            customer_name=entity.customer_name,
            product_sku=entity.product_sku,
            product_name=entity.product_name,
            quantity=entity.quantity,
            unit_price=entity.unit_price,
            total_amount=entity.total_amount,
            currency=entity.currency,
            status=entity.status.value,
            order_date=entity.order_date,
            compensation_requested_at=entity.compensation_requested_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, order: Order) -> Order:
        """创建订单"""
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
        except IntegrityError as e:
            if "order_reference" in str(e).lower():
                logger.warning("order_create_conflict", order_reference=order.order_reference)
                raise OrderAlreadyExistsException(order.order_reference) from e
            raise
        logger.info(
            "order_created",
            order_id=db_order.id,
            order_reference=db_order.order_reference,
            total_amount=str(db_order.total_amount),
        )
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        query = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            query = query.with_for_update()
        # 状态由 Core UPDATE 修改，读取时刷新身份映射
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_reference(
        self, order_reference: str, *, for_update: bool = False
    ) -> Optional[Order]:
        query = select(OrderModel).where(OrderModel.order_reference == order_reference)
        if for_update:
            query = query.with_for_update()
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def save_status(self, order: Order, expected: OrderStatus) -> Order:
        """乐观校验的状态更新；并发修改时抛 InvalidTransitionException"""
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.status == OrderStatus(expected).value)
            .values(status=order.status.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self.get_by_id(order.id)
            if current is None:
                raise OrderNotFoundException(order.id)
            logger.warning(
                "order_status_conflict",
                order_id=order.id,
                expected=OrderStatus(expected).value,
                actual=current.status.value,
                target=order.status.value,
            )
            raise InvalidTransitionException(
                "order", current.status.value, order.status.value, entity_id=order.id
            )
        order.updated_at = now
        logger.info(
            "order_status_changed",
            order_id=order.id,
            from_status=OrderStatus(expected).value,
            to_status=order.status.value,
        )
        return order

    async def claim_compensation(self, order_id: int) -> bool:
        result = await self.session.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.compensation_requested_at.is_(None),
            )
            .values(compensation_requested_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

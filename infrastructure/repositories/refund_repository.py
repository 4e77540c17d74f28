"""
退款仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.refund.entity import Refund, RefundStatus, RefundType
from domain.refund.repository import RefundFilter, RefundRepository
from infrastructure.models.refund import RefundModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyRefundRepository(RefundRepository):
    """退款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundModel) -> Refund:
        """将数据库模型转换为领域实体"""
        return Refund(
            id=model.id,
            refund_reference=model.refund_reference,
            order_id=model.order_id,
            order_reference=model.order_reference,
            customer_id=model.customer_id,
            refund_type=RefundType(model.refund_type),
            refund_amount=Decimal(str(model.refund_amount)),
            original_amount=Decimal(str(model.original_amount)),
            status=RefundStatus(model.status),
            reason=model.reason,
            description=model.description,
            payment_method=model.payment_method,
            transaction_id=model.transaction_id,
            error_message=model.error_message,
            requested_at=model.requested_at,
            processed_at=model.processed_at,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Refund) -> RefundModel:
        """将领域实体转换为数据库模型"""
        return RefundModel(
            id=entity.id,
            refund_reference=entity.refund_reference,
            order_id=entity.order_id,
            order_reference=entity.order_reference,
            customer_id=entity.customer_id,
            refund_type=entity.refund_type.value,
            refund_amount=entity.refund_amount,
            original_amount=entity.original_amount,
            status=entity.status.value,
            reason=entity.reason,
            description=entity.description,
            payment_method=entity.payment_method,
            transaction_id=entity.transaction_id,
            error_message=entity.error_message,
            requested_at=entity.requested_at,
            processed_at=entity.processed_at,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, refund: Refund) -> Refund:
        """创建退款记录"""
        db_refund = self._to_model(refund)
        self.session.add(db_refund)
        await self.session.flush()
        await self.session.refresh(db_refund)
        logger.info(
            "refund_created",
            refund_id=db_refund.id,
            refund_reference=db_refund.refund_reference,
            order_id=db_refund.order_id,
            amount=str(db_refund.refund_amount),
        )
        return self._to_entity(db_refund)

    async def _get_one(self, criteria, for_update: bool) -> Optional[Refund]:
        query = select(RefundModel).where(criteria)
        if for_update:
            query = query.with_for_update()
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        db_refund = result.scalar_one_or_none()
        return self._to_entity(db_refund) if db_refund else None

    async def get_by_id(self, refund_id: int, *, for_update: bool = False) -> Optional[Refund]:
        return await self._get_one(RefundModel.id == refund_id, for_update)

    async def get_by_reference(
        self, refund_reference: str, *, for_update: bool = False
    ) -> Optional[Refund]:
        return await self._get_one(RefundModel.refund_reference == refund_reference, for_update)

    async def update(self, refund: Refund) -> Refund:
        """更新退款记录"""
        result = await self.session.execute(
            select(RefundModel).where(RefundModel.id == refund.id)
        )
        db_refund = result.scalar_one()
        db_refund.status = refund.status.value
        db_refund.transaction_id = refund.transaction_id
        db_refund.error_message = refund.error_message
        db_refund.processed_at = refund.processed_at
        db_refund.extra_metadata = refund.metadata
        db_refund.updated_at = refund.updated_at or datetime.now(timezone.utc)
        await self.session.flush()
        await self.session.refresh(db_refund)
        logger.info(
            "refund_updated",
            refund_id=db_refund.id,
            refund_reference=db_refund.refund_reference,
            status=db_refund.status,
        )
        return self._to_entity(db_refund)

    async def sum_amount(
        self,
        order_id: int,
        statuses: Iterable[RefundStatus],
        *,
        exclude_id: Optional[int] = None,
    ) -> Decimal:
        query = select(func.coalesce(func.sum(RefundModel.refund_amount), 0)).where(
            RefundModel.order_id == order_id,
            RefundModel.status.in_([RefundStatus(s).value for s in statuses]),
        )
        if exclude_id is not None:
            query = query.where(RefundModel.id != exclude_id)
        total = (await self.session.execute(query)).scalar_one()
        return Decimal(str(total)).quantize(Decimal("0.01"))

    @staticmethod
    def _apply_filters(query, filters: RefundFilter):
        if filters.status is not None:
            query = query.where(RefundModel.status == RefundStatus(filters.status).value)
        if filters.refund_type is not None:
            query = query.where(RefundModel.refund_type == RefundType(filters.refund_type).value)
        if filters.customer_id is not None:
            query = query.where(RefundModel.customer_id == filters.customer_id)
        if filters.order_reference is not None:
            query = query.where(RefundModel.order_reference == filters.order_reference)
        # 日期过滤按整天（UTC）计算，to_date 含当天
        if filters.from_date is not None:
            start = datetime.combine(filters.from_date, time.min, tzinfo=timezone.utc)
            query = query.where(RefundModel.requested_at >= start)
        if filters.to_date is not None:
            end = datetime.combine(filters.to_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
            query = query.where(RefundModel.requested_at < end)
        return query

    async def search(
        self, filters: RefundFilter, *, skip: int = 0, limit: int = 15
    ) -> Tuple[List[Refund], int]:
        count_query = self._apply_filters(select(func.count(RefundModel.id)), filters)
        total = (await self.session.execute(count_query)).scalar_one()

        query = self._apply_filters(select(RefundModel), filters)
        query = (
            query.order_by(RefundModel.requested_at.desc(), RefundModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(r) for r in result.scalars().all()], int(total)

    async def list_by_order(self, order_id: int) -> List[Refund]:
        result = await self.session.execute(
            select(RefundModel)
            .where(RefundModel.order_id == order_id)
            .order_by(RefundModel.requested_at.desc(), RefundModel.id.desc())
        )
        return [self._to_entity(r) for r in result.scalars().all()]

    @staticmethod
    def _by(query, status: Optional[RefundStatus], refund_type: Optional[RefundType]):
        if status is not None:
            query = query.where(RefundModel.status == RefundStatus(status).value)
        if refund_type is not None:
            query = query.where(RefundModel.refund_type == RefundType(refund_type).value)
        return query

    async def count_by(
        self,
        *,
        status: Optional[RefundStatus] = None,
        refund_type: Optional[RefundType] = None,
    ) -> int:
        query = self._by(select(func.count(RefundModel.id)), status, refund_type)
        return int((await self.session.execute(query)).scalar_one())

    async def sum_by(
        self,
        *,
        status: Optional[RefundStatus] = None,
        refund_type: Optional[RefundType] = None,
    ) -> Decimal:
        query = self._by(
            select(func.coalesce(func.sum(RefundModel.refund_amount), 0)), status, refund_type
        )
        total = (await self.session.execute(query)).scalar_one()
        return Decimal(str(total)).quantize(Decimal("0.01"))

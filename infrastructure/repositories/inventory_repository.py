"""
库存仓储实现

库存只通过条件 UPDATE 修改（stock = stock ± q），不做读-改-写。
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.inventory.entity import Product, ReservationStatus, StockReservation
from domain.inventory.repository import InventoryRepository
from infrastructure.models.inventory import ProductModel, StockReservationModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyInventoryRepository(InventoryRepository):
    """库存仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _product_entity(model: ProductModel) -> Product:
        return Product(
            id=model.id,
            sku=model.sku,
            name=model.name,
            price=Decimal(str(model.price)),
            stock_quantity=model.stock_quantity,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _reservation_entity(model: StockReservationModel) -> StockReservation:
        return StockReservation(
            id=model.id,
            order_id=model.order_id,
            product_sku=model.product_sku,
            quantity=model.quantity,
            status=ReservationStatus(model.status),
            expires_at=model.expires_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def get_product(self, sku: str, *, for_update: bool = False) -> Optional[Product]:
        query = select(ProductModel).where(ProductModel.sku == sku)
        if for_update:
            query = query.with_for_update()
        # 库存由 Core UPDATE 修改，读取时总是刷新身份映射
        query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        model = result.scalar_one_or_none()
        return self._product_entity(model) if model else None

    async def add_product(self, product: Product) -> Product:
        model = ProductModel(
            sku=product.sku,
            name=product.name,
            price=product.price,
            stock_quantity=product.stock_quantity,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info("product_created", sku=model.sku, stock_quantity=model.stock_quantity)
        return self._product_entity(model)

    async def upsert_product(self, product: Product) -> Product:
        result = await self.session.execute(
            select(ProductModel).where(ProductModel.sku == product.sku).with_for_update()
        )
        model = result.scalar_one_or_none()
        if model is None:
            return await self.add_product(product)
        model.name = product.name
        model.price = product.price
        model.stock_quantity = product.stock_quantity
        await self.session.flush()
        await self.session.refresh(model)
        logger.info("product_updated", sku=model.sku, stock_quantity=model.stock_quantity)
        return self._product_entity(model)

    async def decrement_stock(self, sku: str, quantity: int) -> bool:
        result = await self.session.execute(
            update(ProductModel)
            .where(ProductModel.sku == sku, ProductModel.stock_quantity >= quantity)
            .values(stock_quantity=ProductModel.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        ok = result.rowcount == 1
        logger.info("stock_decremented" if ok else "stock_decrement_rejected", sku=sku, quantity=quantity)
        return ok

    async def increment_stock(self, sku: str, quantity: int) -> None:
        await self.session.execute(
            update(ProductModel)
            .where(ProductModel.sku == sku)
            .values(stock_quantity=ProductModel.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        logger.info("stock_incremented", sku=sku, quantity=quantity)

    async def get_reservation(self, order_id: int, sku: str) -> Optional[StockReservation]:
        result = await self.session.execute(
            select(StockReservationModel)
            .where(
                StockReservationModel.order_id == order_id,
                StockReservationModel.product_sku == sku,
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._reservation_entity(model) if model else None

    async def add_reservation(self, reservation: StockReservation) -> StockReservation:
        model = StockReservationModel(
            order_id=reservation.order_id,
            product_sku=reservation.product_sku,
            quantity=reservation.quantity,
            status=reservation.status.value,
            expires_at=reservation.expires_at,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info(
            "stock_reserved",
            order_id=model.order_id,
            sku=model.product_sku,
            quantity=model.quantity,
        )
        return self._reservation_entity(model)

    async def list_reservations(
        self,
        order_id: int,
        status: Optional[ReservationStatus] = None,
        *,
        for_update: bool = False,
    ) -> List[StockReservation]:
        query = select(StockReservationModel).where(StockReservationModel.order_id == order_id)
        if status is not None:
            query = query.where(StockReservationModel.status == ReservationStatus(status).value)
        if for_update:
            query = query.with_for_update()
        query = query.order_by(StockReservationModel.id).execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return [self._reservation_entity(m) for m in result.scalars().all()]

    async def update_reservation(self, reservation: StockReservation) -> StockReservation:
        result = await self.session.execute(
            select(StockReservationModel).where(StockReservationModel.id == reservation.id)
        )
        model = result.scalar_one()
        model.status = reservation.status.value
        model.updated_at = reservation.updated_at
        await self.session.flush()
        logger.info(
            "reservation_updated",
            order_id=model.order_id,
            sku=model.product_sku,
            status=model.status,
        )
        return self._reservation_entity(model)

"""
库存账本领域服务 - 预留 / 确认 / 归还

所有操作都在调用方的同一事务内执行；库存的扣减和归还只通过仓储的
条件原子 UPDATE 完成，并在商品行锁内进行，避免并发丢失更新。
"""
from decimal import Decimal
from typing import List, Optional, Tuple

from domain.common.exceptions import InsufficientStockException, ProductNotFoundException
from .entity import Product, ReservationStatus, StockReservation
from .repository import InventoryRepository


class InventoryLedger:
    """
    库存账本

    职责：
    1. reserve：按 (订单, SKU) 幂等地扣减库存并生成预留
    2. commit：订单完成时确认预留（不动库存）
    3. release：补偿时归还仍处于 reserved 的预留，可重复调用
    """

    def __init__(
        self,
        repository: InventoryRepository,
        *,
        reservation_ttl_minutes: int = 15,
        auto_provision: bool = False,
        auto_provision_stock: int = 1000,
    ):
        self.repository = repository
        self.reservation_ttl_minutes = reservation_ttl_minutes
        self.auto_provision = auto_provision
        self.auto_provision_stock = auto_provision_stock

    async def reserve(
        self,
        order_id: int,
        sku: str,
        quantity: int,
        *,
        product_name: Optional[str] = None,
        unit_price: Optional[Decimal] = None,
    ) -> Tuple[StockReservation, bool]:
        """
        预留库存，返回 (预留记录, 是否本次新建)。

        已存在的预留（任意状态）直接返回，不会重复扣减。
        """
        existing = await self.repository.get_reservation(order_id, sku)
        if existing is not None:
            return existing, False

        product = await self.repository.get_product(sku, for_update=True)
        if product is None:
            product = await self._provision(sku, product_name, unit_price)

        # 持锁后复查：并发重投的同一订单会在行锁上排队
        existing = await self.repository.get_reservation(order_id, sku)
        if existing is not None:
            return existing, False

        if not product.has_stock(quantity):
            raise InsufficientStockException(sku, quantity, product.stock_quantity)

        if not await self.repository.decrement_stock(sku, quantity):
            current = await self.repository.get_product(sku)
            available = current.stock_quantity if current else 0
            raise InsufficientStockException(sku, quantity, available)

        reservation = StockReservation.new(
            order_id, sku, quantity, ttl_minutes=self.reservation_ttl_minutes
        )
        return await self.repository.add_reservation(reservation), True

    async def commit(self, order_id: int) -> List[StockReservation]:
        """reserved → committed；库存在预留时已扣减"""
        committed = []
        for reservation in await self.repository.list_reservations(
            order_id, ReservationStatus.RESERVED, for_update=True
        ):
            reservation.commit()
            committed.append(await self.repository.update_reservation(reservation))
        return committed

    async def release(self, order_id: int) -> List[StockReservation]:
        """归还仍为 reserved 的预留；committed 预留永不归还"""
        released = []
        for reservation in await self.repository.list_reservations(
            order_id, ReservationStatus.RESERVED, for_update=True
        ):
            await self.repository.get_product(reservation.product_sku, for_update=True)
            await self.repository.increment_stock(reservation.product_sku, reservation.quantity)
            reservation.release()
            released.append(await self.repository.update_reservation(reservation))
        return released

    async def _provision(
        self, sku: str, name: Optional[str], price: Optional[Decimal]
    ) -> Product:
        if not self.auto_provision:
            raise ProductNotFoundException(sku)
        await self.repository.add_product(
            Product(
                id=None,
                sku=sku,
                name=name or sku,
                price=price if price is not None else Decimal("0"),
                stock_quantity=self.auto_provision_stock,
            )
        )
        product = await self.repository.get_product(sku, for_update=True)
        if product is None:
            raise ProductNotFoundException(sku)
        return product

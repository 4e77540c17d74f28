"""
库存仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Product, ReservationStatus, StockReservation


class InventoryRepository(ABC):
    """商品库存与库存预留的数据访问抽象"""

    @abstractmethod
    async def get_product(self, sku: str, *, for_update: bool = False) -> Optional[Product]:
        """根据 SKU 获取商品；for_update=True 时对商品行加锁"""
        pass

    @abstractmethod
    async def add_product(self, product: Product) -> Product:
        """新增商品"""
        pass

    @abstractmethod
    async def upsert_product(self, product: Product) -> Product:
        """按 SKU 新增或更新商品（名称、价格、库存）"""
        pass

    @abstractmethod
    async def decrement_stock(self, sku: str, quantity: int) -> bool:
        """条件扣减：UPDATE ... SET stock = stock - q WHERE stock >= q；返回是否成功"""
        pass

    @abstractmethod
    async def increment_stock(self, sku: str, quantity: int) -> None:
        """原子归还库存"""
        pass

    @abstractmethod
    async def get_reservation(self, order_id: int, sku: str) -> Optional[StockReservation]:
        pass

    @abstractmethod
    async def add_reservation(self, reservation: StockReservation) -> StockReservation:
        pass

    @abstractmethod
    async def list_reservations(
        self,
        order_id: int,
        status: Optional[ReservationStatus] = None,
        *,
        for_update: bool = False,
    ) -> List[StockReservation]:
        """获取订单的预留记录，可按状态过滤"""
        pass

    @abstractmethod
    async def update_reservation(self, reservation: StockReservation) -> StockReservation:
        pass

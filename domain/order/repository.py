"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order, OrderStatus


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        """根据ID获取订单；for_update=True 时加行锁"""
        pass

    @abstractmethod
    async def get_by_reference(
        self, order_reference: str, *, for_update: bool = False
    ) -> Optional[Order]:
        """根据业务订单号获取订单"""
        pass

    @abstractmethod
    async def save_status(self, order: Order, expected: OrderStatus) -> Order:
        """
        持久化状态迁移：UPDATE ... WHERE status = expected。

        若行状态已被并发修改，抛出 InvalidTransitionException（携带实际状态）。
        """
        pass

    @abstractmethod
    async def claim_compensation(self, order_id: int) -> bool:
        """原子地登记补偿请求；仅第一次调用返回 True"""
        pass

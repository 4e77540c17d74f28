"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Payment


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_latest_for_order(self, order_id: int) -> Optional[Payment]:
        """获取订单最近一次支付尝试（created_at 降序，id 兜底）"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: int) -> List[Payment]:
        """订单的全部支付尝试（按时间升序，保留用于审计）"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass

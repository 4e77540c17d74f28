"""
退款仓储接口
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from .entity import Refund, RefundStatus, RefundType


@dataclass
class RefundFilter:
    """列表查询条件（均为可选）"""
    status: Optional[RefundStatus] = None
    refund_type: Optional[RefundType] = None
    customer_id: Optional[int] = None
    order_reference: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None


class RefundRepository(ABC):
    """退款仓储抽象接口"""

    @abstractmethod
    async def create(self, refund: Refund) -> Refund:
        """创建退款记录"""
        pass

    @abstractmethod
    async def get_by_id(self, refund_id: int, *, for_update: bool = False) -> Optional[Refund]:
        pass

    @abstractmethod
    async def get_by_reference(
        self, refund_reference: str, *, for_update: bool = False
    ) -> Optional[Refund]:
        pass

    @abstractmethod
    async def update(self, refund: Refund) -> Refund:
        pass

    @abstractmethod
    async def sum_amount(
        self,
        order_id: int,
        statuses: Iterable[RefundStatus],
        *,
        exclude_id: Optional[int] = None,
    ) -> Decimal:
        """订单下指定状态退款金额之和，可排除某一条"""
        pass

    @abstractmethod
    async def search(
        self, filters: RefundFilter, *, skip: int = 0, limit: int = 15
    ) -> Tuple[List[Refund], int]:
        """按条件分页查询（requested_at 降序），返回 (记录, 总数)"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: int) -> List[Refund]:
        pass

    @abstractmethod
    async def count_by(
        self,
        *,
        status: Optional[RefundStatus] = None,
        refund_type: Optional[RefundType] = None,
    ) -> int:
        pass

    @abstractmethod
    async def sum_by(
        self,
        *,
        status: Optional[RefundStatus] = None,
        refund_type: Optional[RefundType] = None,
    ) -> Decimal:
        pass

"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel
from .inventory import ProductModel, StockReservationModel
from .payment import PaymentModel
from .refund import RefundModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "ProductModel",
    "StockReservationModel",
    "PaymentModel",
    "RefundModel",
]

"""领域层业务异常定义，供领域、应用与基础设施使用。

`retryable` 标记决定任务队列是否重投：业务拒绝（NotFound、非法状态、库存不足、
退款金额校验失败）不重试；网关拒绝与基础设施错误（数据库、超时）重试。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    retryable: bool = False

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"code": int(self.code), "message": self.message, "error_type": self.error_type}
        if self.details:
            payload["details"] = self.details
        if self.field:
            payload["field"] = self.field
        return payload


def is_retryable(exc: BaseException) -> bool:
    """非业务异常（数据库断连、超时等）默认可重试。"""
    return bool(getattr(exc, "retryable", True))


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[int] = None, *, reference: Optional[str] = None):
        details = {}
        if order_id is not None:
            details["order_id"] = order_id
        if reference is not None:
            details["order_reference"] = reference
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details or None,
            message_key="order.not_found",
        )


class OrderAlreadyExistsException(BusinessException):
    def __init__(self, reference: str):
        super().__init__(
            code=BusinessCode.ORDER_ALREADY_EXISTS,
            message=f"Order {reference} already exists",
            error_type="OrderAlreadyExists",
            details={"order_reference": reference},
            field="order_reference",
            message_key="order.exists",
        )


class RefundNotFoundException(BusinessException):
    def __init__(self, refund_id: Optional[int] = None, *, reference: Optional[str] = None):
        details = {}
        if refund_id is not None:
            details["refund_id"] = refund_id
        if reference is not None:
            details["refund_reference"] = reference
        super().__init__(
            code=BusinessCode.REFUND_NOT_FOUND,
            message="Refund not found",
            error_type="RefundNotFound",
            details=details or None,
            message_key="refund.not_found",
        )


class ProductNotFoundException(BusinessException):
    def __init__(self, sku: str):
        super().__init__(
            code=BusinessCode.PRODUCT_NOT_FOUND,
            message=f"Product {sku} not found",
            error_type="ProductNotFound",
            details={"sku": sku},
            field="product_sku",
            message_key="product.not_found",
        )


class InvalidTransitionException(BusinessException):
    def __init__(self, entity: str, current: str, target: str, *, entity_id: Optional[int] = None):
        details = {"entity": entity, "current": current, "target": target}
        if entity_id is not None:
            details["id"] = entity_id
        super().__init__(
            code=BusinessCode.ORDER_INVALID_TRANSITION,
            message=f"Cannot transition {entity} from {current} to {target}",
            error_type="InvalidTransition",
            details=details,
            field="status",
            message_key="order.status.invalid_transition",
        )
        self.current = current
        self.target = target


class InsufficientStockException(BusinessException):
    def __init__(self, sku: str, requested: int, available: int):
        super().__init__(
            code=BusinessCode.INSUFFICIENT_STOCK,
            message=f"Insufficient stock for {sku}: requested {requested}, available {available}",
            error_type="InsufficientStock",
            details={"sku": sku, "requested": requested, "available": available},
            field="quantity",
            message_key="inventory.insufficient_stock",
        )


class ReservationStateException(BusinessException):
    def __init__(self, reservation_id: Optional[int], status: str, action: str):
        super().__init__(
            code=BusinessCode.RESERVATION_STATE_ERROR,
            message=f"Reservation in status {status} cannot be {action}",
            error_type="ReservationStateError",
            details={"reservation_id": reservation_id, "status": status, "action": action},
        )


class GatewayDeclinedException(BusinessException):
    """网关拒绝：在重试预算内重投"""

    retryable = True

    def __init__(self, operation: str, reason: Optional[str] = None, *, reference: Optional[str] = None):
        details = {"operation": operation}
        if reference is not None:
            details["reference"] = reference
        super().__init__(
            code=PaymentCode.GATEWAY_DECLINED,
            message=reason or f"Gateway declined the {operation}",
            error_type="GatewayDeclined",
            details=details,
        )
        self.reason = reason


class PaymentNotCompletedException(BusinessException):
    def __init__(self, order_id: int, status: Optional[str] = None):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_COMPLETED,
            message="Payment is not completed",
            error_type="PaymentNotCompleted",
            details={"order_id": order_id, "payment_status": status},
        )


class OrderNotRefundableException(BusinessException):
    def __init__(self, reference: str, status: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_REFUNDABLE,
            message=f"Order {reference} is not eligible for refund (status: {status})",
            error_type="OrderNotRefundable",
            details={"order_reference": reference, "status": status},
            message_key="refund.order_not_refundable",
        )


class AmountExceedsRefundableException(BusinessException):
    def __init__(self, amount: Decimal, refundable: Decimal):
        super().__init__(
            code=BusinessCode.REFUND_AMOUNT_EXCEEDS_REFUNDABLE,
            message=f"Refund amount {amount} exceeds refundable amount {refundable}",
            error_type="AmountExceedsRefundable",
            details={"amount": str(amount), "refundable": str(refundable)},
            field="amount",
            message_key="refund.amount.exceeds_refundable",
        )


class FullRefundMismatchException(BusinessException):
    def __init__(self, amount: Decimal, refundable: Decimal):
        super().__init__(
            code=BusinessCode.FULL_REFUND_MISMATCH,
            message=f"Full refund amount {amount} must equal refundable amount {refundable}",
            error_type="FullRefundMismatch",
            details={"amount": str(amount), "refundable": str(refundable)},
            field="amount",
            message_key="refund.amount.full_mismatch",
        )


class RefundStateException(BusinessException):
    def __init__(self, reference: str, status: str, action: str):
        super().__init__(
            code=BusinessCode.REFUND_INVALID_STATE,
            message=f"Refund {reference} in status {status} cannot be {action}",
            error_type="RefundStateError",
            details={"refund_reference": reference, "status": status, "action": action},
            field="status",
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
            format_params=format_params,
        )

"""
Shared business codes used across layers (Domain/Application/Tasks).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found

    # Orders / inventory (21xxx)
    ORDER_NOT_FOUND = 21001
    ORDER_INVALID_TRANSITION = 21002
    ORDER_ALREADY_EXISTS = 21003
    PRODUCT_NOT_FOUND = 21101
    INSUFFICIENT_STOCK = 21102
    RESERVATION_STATE_ERROR = 21103

    # Refunds (22xxx)
    REFUND_NOT_FOUND = 22001
    ORDER_NOT_REFUNDABLE = 22002
    REFUND_AMOUNT_EXCEEDS_REFUNDABLE = 22003
    FULL_REFUND_MISMATCH = 22004
    REFUND_INVALID_STATE = 22005

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]

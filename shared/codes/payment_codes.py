"""
Payment specific codes.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway errors (6xxxx)
    GATEWAY_DECLINED = 60000
    GATEWAY_TIMEOUT = 60003
    PAYMENT_NOT_COMPLETED = 60010
    PAYMENT_STATE_ERROR = 60011


# Reasons the simulated gateway reports on a decline
DECLINE_REASONS = {
    "charge": "Payment declined by gateway",
    "refund": "Payment gateway declined the refund",
}

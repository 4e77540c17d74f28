from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException, RefundStateException
from domain.refund.entity import Refund, RefundStatus, RefundType, generate_refund_reference


def _refund(**overrides) -> Refund:
    values = dict(
        id=1,
        refund_reference="REF-ORD-1-ABC123",
        order_id=1,
        order_reference="ORD-1",
        customer_id=3,
        refund_type=RefundType.PARTIAL,
        refund_amount=Decimal("12.345"),
        original_amount=Decimal("50"),
    )
    values.update(overrides)
    return Refund(**values)


def test_reference_format():
    reference = generate_refund_reference("ORD-77", length=8)
    prefix, suffix = reference.rsplit("-", 1)
    assert prefix == "REF-ORD-77"
    assert len(suffix) == 8
    assert suffix.isupper() or suffix.isdigit()
    assert suffix.isalnum()


def test_amount_must_be_positive_and_is_quantized():
    assert _refund().refund_amount == Decimal("12.35")
    with pytest.raises(DomainValidationException):
        _refund(refund_amount=Decimal("0"))


def test_processing_to_completed_clears_error():
    refund = _refund()
    refund.mark_processing()
    refund.record_error("timeout")
    assert refund.status == RefundStatus.PROCESSING
    refund.mark_completed("REF-TXN")
    assert refund.status == RefundStatus.COMPLETED
    assert refund.error_message is None
    assert refund.processed_at is not None
    assert refund.is_settled()


def test_completed_refund_is_frozen():
    refund = _refund(status=RefundStatus.COMPLETED)
    for action in (refund.mark_processing, refund.cancel, refund.reset_for_retry, refund.mark_failed):
        with pytest.raises(RefundStateException):
            action()


def test_failed_refund_goes_back_to_pending_only_on_retry():
    refund = _refund(status=RefundStatus.PENDING)
    refund.mark_failed("declined")
    assert refund.error_message == "declined"
    with pytest.raises(RefundStateException):
        refund.cancel()
    refund.reset_for_retry()
    assert refund.status == RefundStatus.PENDING
    assert refund.error_message is None


def test_refund_percentage():
    assert _refund(refund_amount=Decimal("12.50")).refund_percentage == pytest.approx(25.0)

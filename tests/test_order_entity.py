from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException, InvalidTransitionException
from domain.order.entity import ALLOWED_TRANSITIONS, Order, OrderStatus


def _order(**overrides) -> Order:
    values = dict(
        order_reference="ORD-1",
        customer_id=1,
        customer_name="Grace",
        product_sku="SKU-001",
        product_name="Wireless Mouse",
        quantity=3,
        unit_price=Decimal("19.999"),
    )
    values.update(overrides)
    return Order.create(**values)


def test_create_computes_total_once():
    order = _order()
    assert order.status == OrderStatus.PENDING
    assert order.unit_price == Decimal("20.00")
    assert order.total_amount == Decimal("60.00")
    assert order.currency == "USD"


@pytest.mark.parametrize("field,value", [("quantity", 0), ("unit_price", Decimal("-1")), ("currency", "DOLLAR")])
def test_create_rejects_invalid_values(field, value):
    with pytest.raises(DomainValidationException):
        _order(**{field: value})


def test_happy_path_transitions_return_previous_status():
    order = _order()
    assert order.transition_to(OrderStatus.RESERVED) == OrderStatus.PENDING
    assert order.transition_to(OrderStatus.PAYMENT_PROCESSING) == OrderStatus.RESERVED
    assert order.transition_to(OrderStatus.COMPLETED) == OrderStatus.PAYMENT_PROCESSING
    assert order.is_terminal()
    assert order.is_refundable()


def test_completed_order_cannot_roll_back():
    order = _order()
    for status in (OrderStatus.RESERVED, OrderStatus.PAYMENT_PROCESSING, OrderStatus.COMPLETED):
        order.transition_to(status)
    with pytest.raises(InvalidTransitionException) as excinfo:
        order.transition_to(OrderStatus.ROLLBACK)
    assert excinfo.value.current == "completed"
    assert excinfo.value.target == "rollback"


def test_pending_cannot_skip_to_completed():
    order = _order()
    assert not order.can_transition_to(OrderStatus.COMPLETED)
    with pytest.raises(InvalidTransitionException):
        order.transition_to(OrderStatus.COMPLETED)


def test_failed_only_moves_to_rollback():
    order = _order()
    order.transition_to(OrderStatus.FAILED)
    assert ALLOWED_TRANSITIONS[OrderStatus.FAILED] == frozenset({OrderStatus.ROLLBACK})
    order.transition_to(OrderStatus.ROLLBACK)
    assert order.is_terminal()
    assert not order.is_refundable()


def test_terminal_states_have_no_exits():
    assert ALLOWED_TRANSITIONS[OrderStatus.COMPLETED] == frozenset()
    assert ALLOWED_TRANSITIONS[OrderStatus.ROLLBACK] == frozenset()

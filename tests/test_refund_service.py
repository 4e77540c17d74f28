import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from application.dtos.refunds import CreateRefundDTO, RefundListQuery
from application.ports.task_queue import Queues, TaskNames
from domain.common.exceptions import (
    AmountExceedsRefundableException,
    FullRefundMismatchException,
    OrderNotFoundException,
    OrderNotRefundableException,
    RefundNotFoundException,
    RefundStateException,
)


async def _completed_order(runtime, seed_product, order_dto, gateway, reference="ORD-2001"):
    """Order of 2 x 25.50 driven to completed; returns (queue, services)."""
    await seed_product(stock=10)
    queue, services = runtime(gateway)
    await services.orders.create_order(order_dto(reference, quantity=2))
    await queue.drain()
    return queue, services


def _refund(amount: str, refund_type: str = "partial", reference: str = "ORD-2001", **kwargs) -> CreateRefundDTO:
    return CreateRefundDTO(order_reference=reference, amount=Decimal(amount), refund_type=refund_type, **kwargs)


@pytest.mark.asyncio
async def test_partial_refund_is_processed_and_reduces_refundable(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)

    requested = await services.refunds.request_refund(_refund("20.00", reason="damaged", metadata={"ticket": "T-9"}))
    assert requested.status == "pending"
    assert requested.refund_reference.startswith("REF-ORD-2001-")
    assert len(requested.refund_reference.rsplit("-", 1)[1]) == 6
    assert requested.payment_method == "original_payment"
    [job] = queue.dispatched_named(TaskNames.PROCESS_REFUND)
    assert job.queue == Queues.REFUNDS

    await queue.drain()

    refund = await services.refunds.get_refund(requested.refund_reference)
    assert refund.status == "completed"
    assert refund.transaction_id.startswith("REF-")
    assert refund.processed_at is not None
    assert refund.metadata == {"ticket": "T-9"}

    summary = await services.refunds.order_refund_summary("ORD-2001")
    assert summary.total_refunded == Decimal("20.00")
    assert summary.refundable_amount == Decimal("31.00")
    assert summary.is_fully_refunded is False

    [event] = queue.dispatched_named(TaskNames.REFUND_COMPLETED)
    assert event.payload["amount"] == "20.00"
    assert event.payload["refund_type"] == "partial"


@pytest.mark.asyncio
async def test_full_refund_must_equal_remaining_balance(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)
    await services.refunds.request_refund(_refund("11.00"))
    await queue.drain()

    with pytest.raises(FullRefundMismatchException):
        await services.refunds.request_refund(_refund("30.00", "full"))

    await services.refunds.request_refund(_refund("40.00", "full"))
    await queue.drain()

    summary = await services.refunds.order_refund_summary("ORD-2001")
    assert summary.refundable_amount == Decimal("0.00")
    assert summary.is_fully_refunded is True
    with pytest.raises(AmountExceedsRefundableException):
        await services.refunds.request_refund(_refund("0.01"))


@pytest.mark.asyncio
async def test_request_validation_rejects_synchronously(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)
    before = len(queue.dispatched)

    with pytest.raises(AmountExceedsRefundableException):
        await services.refunds.request_refund(_refund("60.00"))
    with pytest.raises(OrderNotFoundException):
        await services.refunds.request_refund(_refund("1.00", reference="ORD-MISSING"))
    assert len(queue.dispatched) == before


@pytest.mark.asyncio
async def test_only_completed_orders_are_refundable(runtime, seed_product, order_dto):
    await seed_product(stock=10)
    _, services = runtime()
    await services.orders.create_order(order_dto("ORD-PENDING"))

    with pytest.raises(OrderNotRefundableException):
        await services.refunds.request_refund(_refund("1.00", reference="ORD-PENDING"))


@pytest.mark.asyncio
async def test_declined_refund_fails_after_attempts_and_can_be_retried(
    runtime, seed_product, order_dto, gateway_factory
):
    gateway = gateway_factory(charge=1.0, refund=0.0)
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)

    requested = await services.refunds.request_refund(_refund("10.00"))
    await queue.drain()

    failed = await services.refunds.get_refund(requested.refund_reference)
    assert failed.status == "failed"
    assert failed.error_message == "Payment gateway declined the refund"
    refund_calls = [c for c in gateway.calls if c[0] == "refund"]
    assert len(refund_calls) == services.refunds.config.process_attempts

    # a settled refund is left alone by a redelivered task
    redelivered = await services.refunds.process_refund(failed.id)
    assert redelivered.status == "failed"

    gateway.refund_success_rate = 1.0
    retried = await services.refunds.retry_refund(requested.refund_reference)
    assert retried.status == "pending"
    assert retried.error_message is None
    await queue.drain()

    completed = await services.refunds.get_refund(requested.refund_reference)
    assert completed.status == "completed"


@pytest.mark.asyncio
async def test_processing_rechecks_balance_against_other_refunds(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)

    first = await services.refunds.request_refund(_refund("40.00"))
    second = await services.refunds.request_refund(_refund("40.00"))
    await queue.drain()

    assert (await services.refunds.get_refund(first.refund_reference)).status == "completed"
    rejected = await services.refunds.get_refund(second.refund_reference)
    assert rejected.status == "failed"
    assert "exceeds refundable amount" in rejected.error_message
    assert isinstance(queue.failures[-1].error, AmountExceedsRefundableException)
    assert queue.failures[-1].attempts == 1


@pytest.mark.asyncio
async def test_cancel_only_from_pending(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)
    requested = await services.refunds.request_refund(_refund("5.00"))

    cancelled = await services.refunds.cancel_refund(requested.refund_reference)
    assert cancelled.status == "cancelled"

    await queue.drain()
    assert (await services.refunds.get_refund(requested.refund_reference)).status == "cancelled"
    assert [c for c in gateway.calls if c[0] == "refund"] == []

    with pytest.raises(RefundStateException):
        await services.refunds.cancel_refund(requested.refund_reference)
    with pytest.raises(RefundStateException):
        await services.refunds.retry_refund(requested.refund_reference)
    with pytest.raises(RefundNotFoundException):
        await services.refunds.cancel_refund("REF-NOPE")


@pytest.mark.asyncio
async def test_list_and_stats(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)
    await services.refunds.request_refund(_refund("10.00"))
    await services.refunds.request_refund(_refund("6.00"))
    await queue.drain()
    pending = await services.refunds.request_refund(_refund("1.00"))

    page = await services.refunds.list_refunds(RefundListQuery(status="completed", size=1))
    assert page.total == 2
    assert len(page.items) == 1
    assert page.size == 1

    today = date.today()
    window = await services.refunds.list_refunds(
        RefundListQuery(customer_id=7, from_date=today - timedelta(days=1), to_date=today + timedelta(days=1))
    )
    assert window.total == 3
    assert window.items[0].refund_reference == pending.refund_reference

    stats = await services.refunds.refund_stats()
    assert stats.total_refunds == 3
    assert stats.completed_refunds == 2
    assert stats.pending_refunds == 1
    assert stats.partial_refunds == 3
    assert stats.full_refunds == 0
    assert stats.total_refund_amount == Decimal("16.00")
    assert stats.average_refund_amount == Decimal("8.00")


@pytest.mark.asyncio
async def test_refund_after_completed_order_scenario(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=5, price="10.00")
    queue, services = runtime()
    created = await services.orders.create_order(order_dto("ORD-3001", quantity=2, unit_price="10.00"))
    await queue.drain()

    async with uow_factory(readonly=True) as uow:
        assert (await uow.inventory_repository.get_product("SKU-001")).stock_quantity == 3
    assert (await services.orders.get_order(created.id)).status == "completed"

    await services.refunds.request_refund(_refund("8.00", reference="ORD-3001"))
    await queue.drain()
    assert (await services.refunds.order_refund_summary("ORD-3001")).refundable_amount == Decimal("12.00")

    with pytest.raises(AmountExceedsRefundableException) as excinfo:
        await services.refunds.request_refund(_refund("15.00", reference="ORD-3001"))
    assert excinfo.value.details["refundable"] == "12.00"


@pytest.mark.asyncio
async def test_reprocessing_a_completed_refund_is_a_noop(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)
    requested = await services.refunds.request_refund(_refund("51.00", "full"))
    await queue.drain()
    completed = await services.refunds.get_refund(requested.refund_reference)
    assert completed.status == "completed"

    again = await services.refunds.process_refund(completed.id)

    assert again.status == "completed"
    assert again.transaction_id == completed.transaction_id
    assert len([c for c in gateway.calls if c[0] == "refund"]) == 1
    assert len(queue.dispatched_named(TaskNames.REFUND_COMPLETED)) == 1


@pytest.mark.asyncio
async def test_concurrent_processing_never_refunds_more_than_the_total(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)
    first = await services.refunds.request_refund(_refund("40.00"))
    second = await services.refunds.request_refund(_refund("40.00"))

    results = await asyncio.gather(
        services.refunds.process_refund(first.id),
        services.refunds.process_refund(second.id),
        return_exceptions=True,
    )

    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(rejected) == 1
    assert isinstance(rejected[0], AmountExceedsRefundableException)
    statuses = sorted([
        (await services.refunds.get_refund(first.refund_reference)).status,
        (await services.refunds.get_refund(second.refund_reference)).status,
    ])
    assert statuses == ["completed", "failed"]
    summary = await services.refunds.order_refund_summary("ORD-2001")
    assert summary.total_refunded == Decimal("40.00")
    assert summary.total_refunded <= Decimal("51.00")
    assert len([c for c in gateway.calls if c[0] == "refund"]) == 1


@pytest.mark.asyncio
async def test_request_publishes_refund_requested_event(runtime, seed_product, order_dto, gateway):
    queue, services = await _completed_order(runtime, seed_product, order_dto, gateway)

    requested = await services.refunds.request_refund(_refund("5.00"))

    [event] = queue.dispatched_named(TaskNames.REFUND_REQUESTED)
    assert event.queue == Queues.EVENTS
    assert event.payload["refund_id"] == requested.id
    assert event.payload["refund_reference"] == requested.refund_reference
    assert event.payload["amount"] == "5.00"

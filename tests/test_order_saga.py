"""End-to-end saga scenarios driven through the in-process queue."""
import asyncio
from decimal import Decimal

import pytest

from application.ports.task_queue import Queues, TaskNames
from application.services.order_saga_service import OrderSagaService
from domain.common.exceptions import GatewayDeclinedException, InsufficientStockException
from domain.inventory.entity import ReservationStatus
from domain.order.entity import OrderStatus
from domain.payment.entity import PaymentStatus
from infrastructure.tasks.inline import InlineTaskQueue


async def _state(uow_factory, order_id):
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id(order_id)
        product = await uow.inventory_repository.get_product(order.product_sku)
        reservations = await uow.inventory_repository.list_reservations(order_id)
        payments = await uow.payment_repository.list_by_order(order_id)
    return order, product, reservations, payments


@pytest.mark.asyncio
async def test_successful_order_completes_and_notifies(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=10)
    queue, services = runtime()

    created = await services.orders.create_order(order_dto(quantity=2))
    assert created.status == "pending"
    assert created.total_amount == Decimal("51.00")

    await queue.drain()

    order, product, reservations, payments = await _state(uow_factory, created.id)
    assert order.status == OrderStatus.COMPLETED
    assert product.stock_quantity == 8
    assert [r.status for r in reservations] == [ReservationStatus.COMMITTED]
    assert [p.status for p in payments] == [PaymentStatus.COMPLETED]
    assert payments[0].transaction_id.startswith("TXN-")
    assert queue.failures == []

    notifications = queue.dispatched_named(TaskNames.SEND_ORDER_NOTIFICATION)
    assert [n.payload["kind"] for n in notifications] == ["success"]
    assert notifications[0].queue == Queues.NOTIFICATIONS
    assert notifications[0].delay == services.saga.config.notification_delay_seconds
    events = queue.dispatched_named(TaskNames.ORDER_COMPLETED)
    assert events[0].payload["total_amount"] == "51.00"

    summary = await services.orders.get_order(order_reference="ORD-1001")
    assert summary.latest_payment_status == "completed"
    assert summary.refundable_amount == Decimal("51.00")


@pytest.mark.asyncio
async def test_insufficient_stock_fails_without_retry_and_rolls_back(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=1)
    queue, services = runtime()

    created = await services.orders.create_order(order_dto(quantity=5))
    await queue.drain()

    order, product, reservations, payments = await _state(uow_factory, created.id)
    assert order.status == OrderStatus.ROLLBACK
    assert order.compensation_requested_at is not None
    assert product.stock_quantity == 1
    assert reservations == []
    assert payments == []

    [failure] = queue.failures
    assert failure.signature.name == TaskNames.RESERVE_STOCK
    assert isinstance(failure.error, InsufficientStockException)
    assert failure.attempts == 1

    assert len(queue.dispatched_named(TaskNames.ROLLBACK_ORDER)) == 1
    kinds = [n.payload["kind"] for n in queue.dispatched_named(TaskNames.SEND_ORDER_NOTIFICATION)]
    assert kinds == ["failed"]


@pytest.mark.asyncio
async def test_declined_payment_exhausts_attempts_and_releases_stock(
    uow_factory, runtime, seed_product, order_dto, gateway_factory
):
    await seed_product(stock=10)
    gateway = gateway_factory(charge=0.0)
    queue, services = runtime(gateway)

    created = await services.orders.create_order(order_dto(quantity=3))
    await queue.drain()

    order, product, reservations, payments = await _state(uow_factory, created.id)
    attempts = services.saga.config.step_attempts
    assert order.status == OrderStatus.ROLLBACK
    assert product.stock_quantity == 10
    assert [r.status for r in reservations] == [ReservationStatus.RELEASED]
    assert len(payments) == attempts
    assert all(p.status == PaymentStatus.FAILED for p in payments)
    assert payments[-1].error_message == "Payment declined by gateway"
    assert len(gateway.calls) == attempts

    [failure] = queue.failures
    assert failure.signature.name == TaskNames.PROCESS_PAYMENT
    assert isinstance(failure.error, GatewayDeclinedException)
    assert failure.attempts == attempts
    assert queue.dispatched_named(TaskNames.ORDER_COMPLETED) == []


@pytest.mark.asyncio
async def test_start_workflow_skips_orders_that_already_moved(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=10)
    queue, services = runtime()
    created = await services.orders.create_order(order_dto())
    await queue.drain()

    assert await services.saga.start_workflow(created.id) is None
    assert queue.pending_count() == 0


@pytest.mark.asyncio
async def test_redelivered_steps_are_noops_after_completion(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=10)
    queue, services = runtime()
    created = await services.orders.create_order(order_dto(quantity=2))
    await queue.drain()
    dispatched = len(queue.dispatched)

    await services.saga.reserve_stock(created.id)
    payment = await services.saga.process_payment(created.id)
    await services.saga.finalize_order(created.id)
    assert payment.status == PaymentStatus.COMPLETED

    order, product, reservations, payments = await _state(uow_factory, created.id)
    assert order.status == OrderStatus.COMPLETED
    assert product.stock_quantity == 8
    assert len(reservations) == 1
    assert len(payments) == 1
    assert len(queue.dispatched) == dispatched


@pytest.mark.asyncio
async def test_compensation_is_claimed_once_and_never_for_completed_orders(
    uow_factory, runtime, seed_product, order_dto
):
    await seed_product(stock=10)
    queue, services = runtime()
    done = await services.orders.create_order(order_dto("ORD-DONE"))
    await queue.drain()
    assert await services.saga.handle_chain_abandoned(done.id) is False

    stuck = await services.orders.create_order(order_dto("ORD-STUCK"))
    await services.saga.reserve_stock(stuck.id)
    assert await services.saga.handle_chain_abandoned(stuck.id, failed_task=TaskNames.PROCESS_PAYMENT) is True
    assert await services.saga.handle_chain_abandoned(stuck.id) is False
    rollbacks = [s for s in queue.dispatched_named(TaskNames.ROLLBACK_ORDER) if s.payload["order_id"] == stuck.id]
    assert len(rollbacks) == 1


@pytest.mark.asyncio
async def test_rollback_is_idempotent_and_notifies_once(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=10)
    queue, services = runtime()
    created = await services.orders.create_order(order_dto(quantity=4))
    await services.saga.reserve_stock(created.id)

    await services.saga.rollback_order(created.id)
    await services.saga.rollback_order(created.id)

    order, product, reservations, _ = await _state(uow_factory, created.id)
    assert order.status == OrderStatus.ROLLBACK
    assert product.stock_quantity == 10
    assert [r.status for r in reservations] == [ReservationStatus.RELEASED]
    kinds = [n.payload["kind"] for n in queue.dispatched_named(TaskNames.SEND_ORDER_NOTIFICATION)]
    assert kinds == ["failed"]


@pytest.mark.asyncio
async def test_rollback_of_pending_order_passes_through_failed(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=10)
    _, services = runtime()
    created = await services.orders.create_order(order_dto())

    await services.saga.rollback_order(created.id)

    order, product, reservations, _ = await _state(uow_factory, created.id)
    assert order.status == OrderStatus.ROLLBACK
    assert product.stock_quantity == 10
    assert reservations == []


class _SlowGateway:
    provider = "slow"

    async def charge(self, req):
        await asyncio.sleep(5)

    async def refund(self, req):
        await asyncio.sleep(5)


@pytest.mark.asyncio
async def test_gateway_timeout_fails_the_payment_attempt(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=10)
    queue, services = runtime()
    created = await services.orders.create_order(order_dto())
    await services.saga.reserve_stock(created.id)

    saga = OrderSagaService(uow_factory, InlineTaskQueue(), _SlowGateway(), gateway_timeout=0.05)
    with pytest.raises(asyncio.TimeoutError):
        await saga.process_payment(created.id)

    order, _, _, payments = await _state(uow_factory, created.id)
    assert order.status == OrderStatus.PAYMENT_PROCESSING
    assert [p.status for p in payments] == [PaymentStatus.FAILED]


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(uow_factory, runtime, seed_product, order_dto):
    await seed_product(stock=5)
    _, services = runtime()
    orders = [await services.orders.create_order(order_dto(f"ORD-RACE-{i}", quantity=2)) for i in range(4)]

    results = await asyncio.gather(
        *(services.saga.reserve_stock(o.id) for o in orders), return_exceptions=True
    )

    winners = [o for o, r in zip(orders, results) if r is None]
    losers = [o for o, r in zip(orders, results) if r is not None]
    assert len(winners) == 2
    assert all(isinstance(r, InsufficientStockException) for r in results if r is not None)

    _, product, _, _ = await _state(uow_factory, orders[0].id)
    assert product.stock_quantity == 5 - 2 * len(winners)
    assert product.stock_quantity >= 0
    for o in winners:
        order, _, reservations, _ = await _state(uow_factory, o.id)
        assert order.status == OrderStatus.RESERVED
        assert [r.status for r in reservations] == [ReservationStatus.RESERVED]
    for o in losers:
        order, _, reservations, _ = await _state(uow_factory, o.id)
        assert order.status == OrderStatus.FAILED
        assert reservations == []


@pytest.mark.asyncio
async def test_retryable_reserve_failure_keeps_order_pending_until_final_attempt(
    uow_factory, runtime, seed_product, order_dto, monkeypatch
):
    await seed_product(stock=10)
    _, services = runtime()
    created = await services.orders.create_order(order_dto("ORD-FLAKY"))

    class _Unavailable:
        async def reserve(self, *args, **kwargs):
            raise ConnectionError("database unavailable")

    with monkeypatch.context() as m:
        m.setattr(services.saga, "_ledger", lambda uow: _Unavailable())
        with pytest.raises(ConnectionError):
            await services.saga.reserve_stock(created.id, final_attempt=False)
        order, _, _, _ = await _state(uow_factory, created.id)
        assert order.status == OrderStatus.PENDING

    # the next attempt can still reserve
    await services.saga.reserve_stock(created.id)
    order, product, _, _ = await _state(uow_factory, created.id)
    assert order.status == OrderStatus.RESERVED
    assert product.stock_quantity == 8

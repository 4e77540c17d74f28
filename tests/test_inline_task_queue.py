import asyncio

import pytest

from application.ports.task_queue import TaskSignature
from domain.common.exceptions import GatewayDeclinedException, InsufficientStockException
from infrastructure.tasks.inline import InlineTaskQueue


@pytest.mark.asyncio
async def test_retryable_errors_use_the_whole_attempt_budget():
    queue = InlineTaskQueue()
    seen = []

    async def flaky(payload, attempt):
        seen.append((attempt.number, attempt.is_final))
        if attempt.number < 3:
            raise GatewayDeclinedException("charge")

    queue.register("flaky", flaky)
    queue.enqueue("flaky", {}, attempts=3)
    await queue.drain()

    assert seen == [(1, False), (2, False), (3, True)]
    assert queue.failures == []


@pytest.mark.asyncio
async def test_business_errors_are_not_retried():
    queue = InlineTaskQueue()
    calls = []

    async def reject(payload, attempt):
        calls.append(attempt.number)
        raise InsufficientStockException("SKU-1", 5, 1)

    queue.register("reject", reject)
    queue.enqueue("reject", {"order_id": 1}, attempts=3)
    await queue.drain()

    assert calls == [1]
    [failure] = queue.failures
    assert failure.attempts == 1
    assert failure.signature.payload == {"order_id": 1}


@pytest.mark.asyncio
async def test_each_attempt_is_bounded_by_timeout():
    queue = InlineTaskQueue()

    async def hang(payload, attempt):
        await asyncio.sleep(5)

    queue.register("hang", hang)
    queue.enqueue("hang", {}, attempts=2, timeout=0.01)
    await queue.drain()

    [failure] = queue.failures
    assert isinstance(failure.error, asyncio.TimeoutError)
    assert failure.attempts == 2


@pytest.mark.asyncio
async def test_chain_stops_at_failed_step_and_calls_abandon_once():
    queue = InlineTaskQueue()
    ran = []

    async def step(payload, attempt):
        ran.append(payload["step"])
        if payload["step"] == "pay":
            raise GatewayDeclinedException("charge")

    async def abandoned(payload, attempt):
        ran.append(("abandoned", payload["order_id"]))

    queue.register_many({"step": step, "abandon": abandoned})
    queue.enqueue_chain(
        [
            TaskSignature("step", {"step": "reserve"}, attempts=1),
            TaskSignature("step", {"step": "pay"}, attempts=2),
            TaskSignature("step", {"step": "finalize"}, attempts=1),
        ],
        on_abandon=TaskSignature("abandon", {"order_id": 9}),
    )
    await queue.drain()

    assert ran == ["reserve", "pay", "pay", ("abandoned", 9)]


@pytest.mark.asyncio
async def test_unregistered_tasks_are_forwarded_and_recorded():
    queue = InlineTaskQueue()
    queue.enqueue("notifications.send_order_notification", {"order_id": 1, "kind": "success"}, queue="notifications", delay=5)

    assert await queue.drain() == 1
    [sig] = queue.dispatched_named("notifications.send_order_notification")
    assert sig.delay == 5
    assert queue.failures == []


@pytest.mark.asyncio
async def test_drain_guards_against_endless_requeueing():
    queue = InlineTaskQueue()

    async def again(payload, attempt):
        queue.enqueue("again", {})

    queue.register("again", again)
    queue.enqueue("again", {})
    with pytest.raises(RuntimeError):
        await queue.drain(max_jobs=5)

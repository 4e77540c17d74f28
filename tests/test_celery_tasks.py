from types import SimpleNamespace

import pytest
from celery.canvas import Signature, _chain
from celery.utils.functional import arity_greater

from application.ports.task_queue import Queues, TaskNames, TaskSignature
from core.config import RedisSettings, settings
from infrastructure.tasks.config.celery import celery_app
from infrastructure.tasks.utils.dispatcher import HARD_LIMIT_GRACE, TaskDispatcher
import infrastructure.tasks.tasks  # noqa: F401 register tasks


@pytest.fixture
def captured(monkeypatch):
    sent = []

    def fake_apply_async(self, *args, **kwargs):
        sent.append(self)
        return SimpleNamespace(id=f"task-{len(sent)}")

    monkeypatch.setattr(Signature, "apply_async", fake_apply_async)
    monkeypatch.setattr(_chain, "apply_async", fake_apply_async)
    return sent


def test_enqueue_builds_immutable_signature_with_delivery_options(captured):
    task_id = TaskDispatcher().enqueue(
        TaskNames.SEND_ORDER_NOTIFICATION, {"order_id": 3, "kind": "failed"}, Queues.NOTIFICATIONS, delay=5
    )

    assert task_id == "task-1"
    [sig] = captured
    assert sig.task == TaskNames.SEND_ORDER_NOTIFICATION
    assert sig.kwargs == {"order_id": 3, "kind": "failed"}
    assert sig.immutable
    assert sig.options["queue"] == Queues.NOTIFICATIONS
    assert sig.options["countdown"] == 5
    assert "soft_time_limit" not in sig.options


def test_enqueue_chain_links_abandon_errback_to_every_step(captured):
    steps = [
        TaskSignature(TaskNames.RESERVE_STOCK, {"order_id": 1}, Queues.ORDERS, timeout=60),
        TaskSignature(TaskNames.PROCESS_PAYMENT, {"order_id": 1}, Queues.ORDERS, timeout=120),
        TaskSignature(TaskNames.FINALIZE_ORDER, {"order_id": 1}, Queues.ORDERS, timeout=60),
    ]
    abandon = TaskSignature(TaskNames.CHAIN_ABANDONED, {"order_id": 1}, Queues.ORDERS)

    TaskDispatcher().enqueue_chain(steps, on_abandon=abandon, queue=Queues.ORDERS)

    [workflow] = captured
    assert [t.task for t in workflow.tasks] == [s.name for s in steps]
    for task, step in zip(workflow.tasks, steps):
        assert task.immutable
        assert task.options["soft_time_limit"] == step.timeout
        assert task.options["time_limit"] == step.timeout + HARD_LIMIT_GRACE
        assert [e["task"] for e in task.options["link_error"]] == [TaskNames.CHAIN_ABANDONED]


def test_tasks_declare_attempt_budget_and_time_limits():
    reserve = celery_app.tasks[TaskNames.RESERVE_STOCK]
    assert reserve.max_retries == settings.saga.step_attempts - 1
    assert reserve.soft_time_limit == settings.saga.reserve_timeout

    refund = celery_app.tasks[TaskNames.PROCESS_REFUND]
    assert refund.max_retries == settings.refunds.process_attempts - 1
    assert refund.soft_time_limit == settings.refunds.process_timeout


def test_abandon_errback_takes_only_the_order_id():
    # a single-argument errback is queued as a task rather than called inline
    task = celery_app.tasks[TaskNames.CHAIN_ABANDONED]
    assert not arity_greater(task.__header__, 1)


def test_routes_by_task_prefix():
    routes = celery_app.conf.task_routes
    assert routes["orders.*"] == {"queue": Queues.ORDERS}
    assert routes["refunds.*"] == {"queue": Queues.REFUNDS}
    assert celery_app.conf.task_acks_late is True


def test_redis_settings_only_carry_the_broker_url():
    assert set(RedisSettings.model_fields) == {"url"}

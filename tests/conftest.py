"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./test_order_saga.db")
os.environ.setdefault("PAYMENT__SIMULATED__LATENCY__MIN_SECONDS", "0")
os.environ.setdefault("PAYMENT__SIMULATED__LATENCY__MAX_SECONDS", "0")

import functools
import random
from decimal import Decimal

import pytest
import pytest_asyncio

from application.dtos.orders import CreateOrderDTO
from domain.inventory.entity import Product
from infrastructure.database import create_engine, create_session_factory, create_tables
from infrastructure.external.payments.simulated import SimulatedPaymentGateway
from infrastructure.tasks.handlers import build_services, build_task_handlers
from infrastructure.tasks.inline import InlineTaskQueue
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def uow_factory(engine):
    return functools.partial(SQLAlchemyUnitOfWork, session_factory=create_session_factory(engine))


def make_gateway(charge: float = 1.0, refund: float = 1.0) -> SimulatedPaymentGateway:
    return SimulatedPaymentGateway(
        charge_success_rate=charge,
        refund_success_rate=refund,
        min_latency=0,
        max_latency=0,
        rng=random.Random(42),
    )


@pytest.fixture
def gateway():
    return make_gateway()


@pytest.fixture
def runtime(uow_factory):
    """Build (queue, services) wired to the in-process queue for a given gateway."""

    def _build(gw=None):
        queue = InlineTaskQueue()
        services = build_services(uow_factory, queue, gw or make_gateway())
        queue.register_many(build_task_handlers(services))
        return queue, services

    return _build


@pytest.fixture
def seed_product(uow_factory):
    async def _seed(sku: str = "SKU-001", stock: int = 10, price: str = "25.50", name: str = "Wireless Mouse"):
        async with uow_factory() as uow:
            return await uow.inventory_repository.add_product(
                Product(id=None, sku=sku, name=name, price=Decimal(price), stock_quantity=stock)
            )

    return _seed


@pytest.fixture
def order_dto():
    def _dto(reference: str = "ORD-1001", *, sku: str = "SKU-001", quantity: int = 2, unit_price: str = "25.50") -> CreateOrderDTO:
        return CreateOrderDTO(
            order_reference=reference,
            customer_id=7,
            customer_name="Ada Lovelace",
            product_sku=sku,
            product_name="Wireless Mouse",
            quantity=quantity,
            unit_price=Decimal(unit_price),
        )

    return _dto


@pytest.fixture
def gateway_factory():
    return make_gateway

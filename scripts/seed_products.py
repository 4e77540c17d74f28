#!/usr/bin/env python3
"""Seed the product catalogue used by the order saga.

Existing SKUs are updated in place, so the script can be re-run to reset
stock levels on a development database.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal

from core.logging_config import get_logger
from domain.inventory.entity import Product
from infrastructure.database import create_tables, engine
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

logger = get_logger(__name__)

PRODUCTS = [
    ("SKU-001", "Wireless Mouse", "25.50", 1000),
    ("SKU-002", "USB-C Charger", "15.00", 1500),
    ("SKU-003", "Mechanical Keyboard", "79.99", 500),
    ("SKU-004", "HD Webcam", "49.99", 750),
    ("SKU-005", "External SSD 1TB", "129.99", 300),
    ("SKU-006", "Noise Cancelling Headphones", "199.00", 400),
    ("SKU-007", "Portable Monitor", "179.99", 200),
]


async def seed() -> int:
    await create_tables()
    async with SQLAlchemyUnitOfWork() as uow:
        for sku, name, price, stock in PRODUCTS:
            await uow.inventory_repository.upsert_product(
                Product(id=None, sku=sku, name=name, price=Decimal(price), stock_quantity=stock)
            )
    await engine.dispose()
    logger.info("products_seeded", count=len(PRODUCTS))
    return len(PRODUCTS)


def main() -> int:
    asyncio.run(seed())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Pytest fixtures for pawcart tests."""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

#in-memory database for the whole run; must be set before pawcart is imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest

from pawcart.celery_worker import celery_app
from pawcart.data import models  # noqa: F401
from pawcart.data.database import Base, SessionLocal, engine
from pawcart.domain.errors import ProductNotFound
from pawcart.domain.models import CartLine, InventorySnapshot, ProductStatus

celery_app.conf.task_always_eager = True


class FakeRedis:
    """The handful of redis.asyncio calls the OTP channel makes."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def aclose(self):
        pass


class FakeClock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeInventory:
    """
    Inventory lookup keyed by product ref. A value may be a snapshot, an
    exception to raise, or a list of (delay, snapshot) consumed call by call.
    """

    def __init__(self, stock: dict | None = None):
        self.stock = dict(stock or {})
        self.calls = []

    async def get_product(self, product_ref: str) -> InventorySnapshot:
        self.calls.append(product_ref)
        value = self.stock.get(product_ref)
        if isinstance(value, list):
            delay, value = value.pop(0)
            await asyncio.sleep(delay)
        if value is None:
            raise ProductNotFound(product_ref)
        if isinstance(value, Exception):
            raise value
        return value


class FakeAccounts:
    def __init__(self, authoritative=None, fallback=None, authoritative_delay=0.0, fallback_delay=0.0):
        self.authoritative = authoritative
        self.fallback = fallback
        self.authoritative_delay = authoritative_delay
        self.fallback_delay = fallback_delay

    async def get_points_balance(self, account_ref: str) -> int:
        await asyncio.sleep(self.authoritative_delay)
        if isinstance(self.authoritative, Exception):
            raise self.authoritative
        return self.authoritative

    async def derive_balance_from_history(self, account_ref: str) -> int:
        await asyncio.sleep(self.fallback_delay)
        if isinstance(self.fallback, Exception):
            raise self.fallback
        return self.fallback


def stock(ref: str, qty: int, status: ProductStatus = ProductStatus.ACTIVE) -> InventorySnapshot:
    return InventorySnapshot(product_ref=ref, available_qty=qty, status=status)


def line(ref: str, qty: int, price, name: str = "") -> CartLine:
    return CartLine(product_ref=ref, requested_qty=qty, unit_price=Decimal(str(price)), display_name=name or ref)


VALID_ADDRESS = {
    "full_name": "Nimal Perera",
    "phone": "0771234567",
    "street": "12 Temple Road",
    "city": "Colombo",
    "postal_code": "10100",
    "country": "Sri Lanka",
}

VALID_CARD = {
    "name": "Nimal Perera",
    "number": "4111111111111111",
    "expiry": "2099-12-31",
    "cvv": "123",
}


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_session():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)

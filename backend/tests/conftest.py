"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from carrier_ledger.core import database as db_module
from carrier_ledger.core.database import Base
from carrier_ledger.core.locks import lock_coordinator
from carrier_ledger.models import (
    Carrier,
    CarrierCoverage,
    CarrierZone,
    Order,
    OrderStatus,
    Store,
)

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known default store ID used across all tests
DEFAULT_STORE_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


def _seed_default_store(session: Session) -> None:
    """Insert a default store used by all tests."""
    store = session.query(Store).filter(Store.id == DEFAULT_STORE_ID).first()
    if store is None:
        store = Store(id=DEFAULT_STORE_ID, name="Default Test Store", timezone="UTC")
        session.add(store)
        session.commit()


def create_carrier(
    db: Session,
    name: str = "Rapido Express",
    zones: dict[str, str] | None = None,
    coverage: dict[str, str] | None = None,
    store_id: uuid.UUID = DEFAULT_STORE_ID,
    **kwargs,
) -> Carrier:
    """Carrier with rate tables; defaults to a single 10.00 fallback zone."""
    carrier = Carrier(store_id=store_id, name=name, **kwargs)
    db.add(carrier)
    db.flush()
    for zone_name, rate in (zones if zones is not None else {"default": "10.00"}).items():
        db.add(CarrierZone(carrier_id=carrier.id, zone_name=zone_name, rate=Decimal(rate)))
    for city, rate in (coverage or {}).items():
        db.add(CarrierCoverage(carrier_id=carrier.id, city=city, rate=Decimal(rate)))
    db.commit()
    db.refresh(carrier)
    return carrier


def create_order(
    db: Session,
    total_price: str = "100.00",
    payment_method: str | None = "efectivo",
    store_id: uuid.UUID = DEFAULT_STORE_ID,
    **kwargs,
) -> Order:
    kwargs.setdefault("order_number", f"ORD-{uuid.uuid4().hex[:8]}")
    kwargs.setdefault("status", OrderStatus.CONFIRMED.value)
    kwargs.setdefault("shipping_city", "Asuncion")
    order = Order(
        store_id=store_id,
        total_price=Decimal(total_price),
        payment_method=payment_method,
        **kwargs,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    # Patch module-level engine and session factory
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    # Seed default store so all tests can reference it
    session = _TestSessionLocal()
    try:
        _seed_default_store(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    lock_coordinator.reset()

    # Restore originals
    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def default_store_id():
    """Return the default store ID for tests."""
    return DEFAULT_STORE_ID

"""Shared fixtures for RaffleBee tests.

Every test gets a fresh DatabaseManager bound to a temp-file SQLite
database (a file rather than :memory: so worker threads share it).
"""
import os
import shutil
import tempfile
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from business.events import OrderPaid
from business.lifecycle import EntryLifecycle
from business.merchants import MerchantService
from business.qualification import QualificationService
from database import DatabaseManager

SHOP = "demo.myshopify.com"
FIXED_NOW = datetime(2024, 5, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="rafflebee-tests-")
    db_path = os.path.join(temp_dir, "test.db")
    manager = DatabaseManager(database_url=f"sqlite:///{db_path}")
    manager.create_tables()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clock():
    """Stable clock inside 2024-Q2."""
    return lambda: FIXED_NOW


@pytest.fixture
def lifecycle(temp_db, clock):
    return EntryLifecycle(temp_db, clock=clock)


@pytest.fixture
def merchants(temp_db):
    return MerchantService(temp_db)


@pytest.fixture
def qualification(temp_db, clock):
    return QualificationService(temp_db, clock=clock)


@pytest.fixture
def merchant(temp_db):
    """An active STANDARD merchant with an $80 threshold."""
    return make_merchant(temp_db)


def make_merchant(db, shop=SHOP, threshold="80", plan="STANDARD",
                  is_active=True):
    """Helper: create a merchant with the given settings."""
    db.merchants.get_or_create(shop)
    return db.merchants.update_settings(
        shop, threshold=Decimal(threshold), billing_plan=plan,
        is_active=is_active
    )


def order_paid(order_id="1001", shop=SHOP, subtotal="80.00",
               country="US", **extra):
    """Helper: build an OrderPaid event."""
    return OrderPaid(
        order_id=order_id, shop_domain=shop, subtotal=subtotal,
        billing_country=country,
        customer_email=extra.pop("customer_email", "jane@example.com"),
        customer_id=extra.pop("customer_id", "cust-1"),
        customer_name=extra.pop("customer_name", "Jane Doe"),
        **extra
    )

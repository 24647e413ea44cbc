"""Repository tests.

Tests for:
- MerchantRepository: get_or_create, update_settings, deactivate, delete_with_records
- EntryRepository / TransactionRepository: conditional insert, compare-and-set
- DatabaseManager: transaction scope
"""
from decimal import Decimal

import pytest

from database.models import Merchant


def _entry(merchant_id, order_id="1001", amount="80.00"):
    return {
        "order_id": order_id,
        "merchant_id": merchant_id,
        "customer_email": "jane@example.com",
        "order_amount": Decimal(amount),
        "period": "2024-Q2",
    }


def _transaction(merchant_id, order_id="1001"):
    return {
        "order_id": order_id,
        "merchant_id": merchant_id,
        "fee_amount": Decimal("2.40"),
        "description": f"Transaction fee for order #{order_id}",
    }


# ============================================================
# MerchantRepository Tests
# ============================================================
class TestMerchantRepository:

    def test_get_or_create_is_idempotent(self, temp_db):
        first = temp_db.merchants.get_or_create("a.myshopify.com", Decimal("10"))
        second = temp_db.merchants.get_or_create("a.myshopify.com", Decimal("99"))
        assert first.id == second.id
        assert second.threshold == Decimal("10.00")

    def test_update_settings(self, temp_db):
        temp_db.merchants.get_or_create("a.myshopify.com")
        merchant = temp_db.merchants.update_settings(
            "a.myshopify.com", threshold=Decimal("25"), billing_plan="ENTERPRISE"
        )
        assert merchant.threshold == Decimal("25")
        assert merchant.billing_plan == "ENTERPRISE"

    def test_update_settings_unknown(self, temp_db):
        assert temp_db.merchants.update_settings("x.myshopify.com", is_active=False) is None

    def test_deactivate(self, temp_db):
        temp_db.merchants.get_or_create("a.myshopify.com")
        assert temp_db.merchants.deactivate("a.myshopify.com") is True
        assert temp_db.merchants.get_by_shop("a.myshopify.com").is_active is False

    def test_base_crud_helpers(self, temp_db):
        merchant = temp_db.merchants.get_or_create("a.myshopify.com")
        assert temp_db.merchants.get_by_id(Merchant, merchant.id).shop_domain == "a.myshopify.com"
        assert len(temp_db.merchants.get_all(Merchant, {"is_active": True})) == 1


# ============================================================
# Entry / Transaction Tests
# ============================================================
class TestEntryAndTransaction:

    @pytest.fixture
    def merchant_id(self, temp_db):
        return temp_db.merchants.get_or_create("a.myshopify.com").id

    def test_conditional_insert(self, temp_db, merchant_id):
        with temp_db.transaction() as session:
            assert temp_db.entries.create_if_absent(_entry(merchant_id), session) is True
            assert temp_db.transactions.create_if_absent(
                _transaction(merchant_id), session
            ) is True
        with temp_db.transaction() as session:
            assert temp_db.entries.create_if_absent(
                _entry(merchant_id, amount="5.00"), session
            ) is False
            assert temp_db.transactions.create_if_absent(
                _transaction(merchant_id), session
            ) is False

        entry = temp_db.entries.get_by_order("1001")
        assert entry.order_amount == Decimal("80.00")
        assert entry.is_active is False
        assert temp_db.transactions.get_by_order("1001").status == "PENDING"

    def test_compare_and_set(self, temp_db, merchant_id):
        with temp_db.transaction() as session:
            temp_db.transactions.create_if_absent(_transaction(merchant_id), session)

        with temp_db.transaction() as session:
            assert temp_db.transactions.compare_and_set_status(
                "1001", ["PENDING", "FAILED"], "COMPLETED", session
            ) is True
        with temp_db.transaction() as session:
            assert temp_db.transactions.compare_and_set_status(
                "1001", ["PENDING", "FAILED"], "COMPLETED", session
            ) is False
        assert temp_db.transactions.get_by_order("1001").status == "COMPLETED"

    def test_set_active(self, temp_db, merchant_id):
        with temp_db.transaction() as session:
            temp_db.entries.create_if_absent(_entry(merchant_id), session)
        with temp_db.transaction() as session:
            assert temp_db.entries.set_active("1001", True, session) == 1
        assert temp_db.entries.get_by_order("1001").is_active is True

    def test_recent_and_stats(self, temp_db, merchant_id):
        with temp_db.transaction() as session:
            temp_db.entries.create_if_absent(_entry(merchant_id, "1", "10.00"), session)
            temp_db.entries.create_if_absent(_entry(merchant_id, "2", "20.00"), session)
            temp_db.entries.set_active("2", True, session)

        recent = temp_db.entries.get_recent(merchant_id, limit=1)
        assert len(recent) == 1
        stats = temp_db.entries.get_active_stats(merchant_id)
        assert stats == {"count": 1, "revenue": Decimal("20.00")}

    def test_active_amounts(self, temp_db, merchant_id):
        with temp_db.transaction() as session:
            temp_db.entries.create_if_absent(_entry(merchant_id, "1", "10.00"), session)
            temp_db.entries.create_if_absent(_entry(merchant_id, "2", "20.00"), session)
            temp_db.entries.set_active("2", True, session)

        assert temp_db.entries.get_active_amounts(merchant_id) == [Decimal("20.00")]


class TestTransactionScope:

    def test_rollback_on_error(self, temp_db):
        with pytest.raises(RuntimeError):
            with temp_db.transaction() as session:
                session.add(Merchant(shop_domain="a.myshopify.com"))
                session.flush()
                raise RuntimeError("abort")
        assert temp_db.merchants.get_by_shop("a.myshopify.com") is None

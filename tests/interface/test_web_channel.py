"""Web channel HTTP tests (FastAPI TestClient)."""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from interface.web.channel import WebChannel
from interface.webhooks import WebhookProcessor
from tests.conftest import SHOP, make_merchant

HEADERS = {"X-Shopify-Shop-Domain": SHOP}


def _order(order_id=1001, subtotal="80.00", **extra):
    payload = {
        "id": order_id,
        "order_number": order_id,
        "subtotal_price": subtotal,
        "email": "jane@example.com",
        "billing_address": {"country_code": "US"},
        "customer": {"id": 42, "first_name": "Jane", "last_name": "Doe"},
    }
    payload.update(extra)
    return payload


@pytest.fixture
def client(lifecycle, qualification, merchants):
    channel = WebChannel(
        webhook_handler=WebhookProcessor(lifecycle, merchants),
        lifecycle=lifecycle,
        qualification=qualification,
        merchants=merchants,
    )
    return TestClient(channel._create_app())


class TestWebhookRoutes:

    def test_orders_paid(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        resp = client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["state"] == "PENDING"

    def test_orders_paid_invalid_payload(self, client):
        resp = client.post("/webhooks/orders/paid", json={}, headers=HEADERS)
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_orders_updated(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)
        resp = client.post(
            "/webhooks/orders/updated",
            json=_order(total_refunded="80.00"), headers=HEADERS,
        )
        assert resp.json()["state"] == "DEACTIVATED"

    def test_app_uninstalled(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        resp = client.post("/webhooks/app/uninstalled", json={}, headers=HEADERS)
        assert resp.status_code == 200
        assert temp_db.merchants.get_by_shop(SHOP).is_active is False

    def test_gdpr_redacts(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)
        resp = client.post("/webhooks/customers/redact", json={
            "shop_domain": SHOP, "customer": {"id": 42},
        })
        assert resp.json()["entries_affected"] == 1

        resp = client.post("/webhooks/shop/redact", json={"shop_domain": SHOP})
        assert resp.json()["entries_deleted"] == 1


class TestStorefrontApi:

    def test_opt_in_flow(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)

        resp = client.post("/api/opt-in", json={
            "orderId": "1001", "customerOptIn": True, "shopDomain": SHOP,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["state"] == "ACTIVE"
        assert body["message"] == "Entry activated!"

        pool = client.get("/api/prize-pool").json()
        assert pool["period"] == "2024-Q2"
        assert pool["currentAmount"] == 1.2
        assert pool["nextDrawing"] == "2024-06-30"
        assert pool["formattedAmount"] == "$1.20"
        assert pool["periodLabel"] == "2024 Q2 (Apr-Jun)"

    def test_opt_out(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)
        resp = client.post("/api/opt-in", json={
            "orderId": "1001", "customerOptIn": False, "shopDomain": SHOP,
        })
        assert resp.json()["message"] == "Opt-out recorded"

    def test_ignored_opt_out_on_active_entry(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)
        client.post("/api/opt-in", json={
            "orderId": "1001", "customerOptIn": True, "shopDomain": SHOP,
        })
        body = client.post("/api/opt-in", json={
            "orderId": "1001", "customerOptIn": False, "shopDomain": SHOP,
        }).json()
        assert body["status"] == "UNCHANGED"
        assert body["state"] == "ACTIVE"
        assert body["message"] == "No change, entry is active"

    def test_repeated_opt_in_is_not_reported_as_activation(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)
        payload = {"orderId": "1001", "customerOptIn": True, "shopDomain": SHOP}
        client.post("/api/opt-in", json=payload)
        body = client.post("/api/opt-in", json=payload).json()
        assert body["status"] == "UNCHANGED"
        assert body["message"] != "Entry activated!"

    def test_opt_in_missing_fields(self, client):
        resp = client.post("/api/opt-in", json={"orderId": "1001"})
        assert resp.status_code == 400

    def test_opt_in_unknown_entry(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        resp = client.post("/api/opt-in", json={
            "orderId": "nope", "customerOptIn": True, "shopDomain": SHOP,
        })
        assert resp.status_code == 404

    def test_cart_check(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        body = client.post("/api/cart-check", json={
            "shop": SHOP, "cartTotal": 49.99,
        }).json()
        assert body == {
            "showBanner": True,
            "qualified": False,
            "threshold": 50.0,
            "prizeAmount": "$1,000",
            "cartTotal": 49.99,
        }

    def test_cart_check_sub_cent_below_threshold(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        body = client.post("/api/cart-check", json={
            "shop": SHOP, "cartTotal": "49.995",
        }).json()
        assert body["showBanner"] is True
        assert body["qualified"] is False

    def test_cart_check_disabled_merchant(self, temp_db, client):
        make_merchant(temp_db, threshold="0")
        body = client.post("/api/cart-check", json={
            "shop": SHOP, "cartTotal": 100,
        }).json()
        assert body == {"showBanner": False}

    def test_cart_check_bad_input(self, client):
        body = client.post("/api/cart-check", json={"cartTotal": "abc"}).json()
        assert body == {"showBanner": False}


class TestMerchantApi:

    def test_settings_roundtrip(self, client):
        resp = client.get("/api/merchant", params={"shop": SHOP})
        assert resp.json()["threshold"] == 0.0

        resp = client.post(
            "/api/settings", params={"shop": SHOP},
            json={"threshold": "75", "billingPlan": "ENTERPRISE"},
        )
        assert resp.status_code == 200
        assert resp.json()["merchant"]["billingPlan"] == "ENTERPRISE"

    def test_settings_validation(self, client):
        client.get("/api/merchant", params={"shop": SHOP})
        resp = client.post(
            "/api/settings", params={"shop": SHOP},
            json={"threshold": "-5", "billingPlan": "STANDARD"},
        )
        assert resp.status_code == 400

    def test_merchant_suggested_threshold(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(1, "80"), headers=HEADERS)
        client.post("/webhooks/orders/paid", json=_order(2, "120"), headers=HEADERS)
        for order_id in ("1", "2"):
            client.post("/api/opt-in", json={
                "orderId": order_id, "customerOptIn": True, "shopDomain": SHOP,
            })

        body = client.get("/api/merchant", params={"shop": SHOP}).json()
        assert body["averageOrderValue"] == 100.0
        assert body["suggestedThreshold"] == 115.0

    def test_prize_pool_history(self, temp_db, client):
        temp_db.prize_pools.apply_contribution("2024-Q1", Decimal("3"))
        temp_db.prize_pools.apply_contribution("2024-Q2", Decimal("1.2"))
        body = client.get("/api/prize-pools").json()
        assert [p["period"] for p in body] == ["2024-Q2", "2024-Q1"]
        assert body[1]["periodLabel"] == "2024 Q1 (Jan-Mar)"
        assert body[1]["currentAmount"] == 3.0

    def test_dashboard(self, temp_db, client):
        make_merchant(temp_db, threshold="50")
        client.post("/webhooks/orders/paid", json=_order(), headers=HEADERS)
        body = client.get("/api/dashboard", params={"shop": SHOP}).json()
        assert body["total_entries"] == 0
        assert body["entries"][0]["order_id"] == "1001"

    def test_dashboard_unknown(self, client):
        resp = client.get("/api/dashboard", params={"shop": "x.myshopify.com"})
        assert resp.status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "rafflebee"}

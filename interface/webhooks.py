"""Shopify webhook 解析与分发。

把 Shopify 的 JSON 负载转换为核心事件（OrderPaid / OrderUpdated），
并根据主题分发给生命周期处理器或商户管理服务。

错误映射：
- ValidationError → 400（负载无效，不产生状态变化）
- PersistenceError → 500（Shopify 会重试，重试是幂等的）
- 其他“不适用”情况 → 200
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from business.errors import PersistenceError, ValidationError
from business.events import OrderPaid, OrderUpdated
from business.lifecycle import EntryLifecycle, EventOutcome
from business.merchants import MerchantService
from interface.base import Webhook, WebhookAck, WebhookTopic


def _order(payload: Dict[str, Any]) -> Dict[str, Any]:
    """兼容两种负载：订单对象本身，或 ``{"order": {...}}`` 包装。"""
    order = payload.get("order", payload) if payload else None
    if not order or order.get("id") is None:
        raise ValidationError("No order data in webhook payload")
    return order


def _customer_name(order: Dict[str, Any]) -> Optional[str]:
    customer = order.get("customer")
    if customer:
        name = " ".join(
            part for part in (
                customer.get("first_name"), customer.get("last_name")
            ) if part
        )
        if name:
            return name
    billing = order.get("billing_address") or {}
    return billing.get("name")


def parse_order_paid(shop_domain: Optional[str],
                     payload: Dict[str, Any]) -> OrderPaid:
    """把 orders/paid 负载转换为 OrderPaid 事件。

    Raises:
        ValidationError: 缺少订单号、店铺域名或小计。
    """
    order = _order(payload)
    billing = order.get("billing_address") or {}
    customer = order.get("customer") or {}
    order_number = order.get("order_number")
    return OrderPaid(
        order_id=str(order["id"]),
        shop_domain=shop_domain,
        subtotal=order.get("subtotal_price"),
        billing_country=billing.get("country_code"),
        customer_email=order.get("email"),
        customer_id=(
            str(customer["id"]) if customer.get("id") is not None else None
        ),
        customer_name=_customer_name(order),
        order_number=str(order_number) if order_number is not None else None,
    )


def parse_order_updated(shop_domain: Optional[str],
                        payload: Dict[str, Any]) -> OrderUpdated:
    """把 orders/updated 负载转换为 OrderUpdated 事件。"""
    order = _order(payload)
    return OrderUpdated(
        order_id=str(order["id"]),
        shop_domain=shop_domain,
        subtotal=order.get("subtotal_price"),
        total_refunded=order.get("total_refunded") or "0",
    )


def _outcome_ack(outcome: EventOutcome) -> WebhookAck:
    return WebhookAck(
        status_code=200,
        message=outcome.reason or f"Entry {outcome.state.value.lower()}",
        data={
            "status": outcome.status.value,
            "order_id": outcome.order_id,
            "state": outcome.state.value,
        },
    )


class WebhookProcessor:
    """webhook 分发器，可直接作为 Channel 的 webhook_handler 使用。"""

    def __init__(self, lifecycle: EntryLifecycle,
                 merchants: MerchantService) -> None:
        self.lifecycle = lifecycle
        self.merchants = merchants

    def __call__(self, webhook: Webhook) -> WebhookAck:
        try:
            return self._dispatch(webhook)
        except ValidationError as e:
            logger.error(f"Invalid {webhook.topic.value} webhook: {e}")
            return WebhookAck(status_code=400, message=str(e))
        except PersistenceError as e:
            return WebhookAck(status_code=500, message=str(e))
        except SQLAlchemyError as e:
            logger.error(f"{webhook.topic.value} webhook failed: {e}")
            return WebhookAck(status_code=500, message="Internal server error")

    def _dispatch(self, webhook: Webhook) -> WebhookAck:
        topic = webhook.topic
        payload = webhook.payload or {}

        if topic == WebhookTopic.ORDERS_PAID:
            event = parse_order_paid(webhook.shop_domain, payload)
            return _outcome_ack(self.lifecycle.handle_order_paid(event))

        if topic == WebhookTopic.ORDERS_UPDATED:
            event = parse_order_updated(webhook.shop_domain, payload)
            return _outcome_ack(self.lifecycle.handle_order_updated(event))

        shop_domain = webhook.shop_domain or payload.get("shop_domain")
        if not shop_domain:
            raise ValidationError("shop_domain is required")

        if topic == WebhookTopic.APP_UNINSTALLED:
            self.merchants.uninstall(shop_domain)
            return WebhookAck(status_code=200, message="App uninstalled processed")

        if topic == WebhookTopic.CUSTOMERS_REDACT:
            customer = payload.get("customer")
            if not customer:
                raise ValidationError("customer is required")
            affected = self.merchants.redact_customer(
                shop_domain, customer.get("id"), customer.get("email")
            )
            return WebhookAck(
                status_code=200,
                message="Customer data redacted successfully",
                data={"entries_affected": affected},
            )

        if topic == WebhookTopic.SHOP_REDACT:
            counts = self.merchants.redact_shop(shop_domain)
            if counts is None:
                return WebhookAck(status_code=200, message="Merchant not found")
            return WebhookAck(
                status_code=200,
                message="Shop data redacted successfully",
                data={
                    "merchant_deleted": True,
                    "entries_deleted": counts["entries"],
                    "transactions_deleted": counts["transactions"],
                },
            )

        raise ValidationError(f"Unsupported webhook topic: {topic}")

"""测试通道抽象基类"""
import pytest
from datetime import datetime

from interface.base import Channel, Webhook, WebhookAck, WebhookTopic


class ConcreteChannel(Channel):
    """具体通道实现用于测试"""

    def __init__(self, name: str, webhook_handler=None):
        super().__init__(name, webhook_handler)
        self.startup_called = False
        self.shutdown_called = False

    async def startup(self):
        self.startup_called = True
        self.running = True

    async def shutdown(self):
        self.shutdown_called = True
        self.running = False


def _webhook(topic=WebhookTopic.ORDERS_PAID):
    return Webhook(topic=topic, shop_domain="demo.myshopify.com",
                   payload={"id": 1})


class TestWebhookTopic:

    def test_topic_values(self):
        assert WebhookTopic.ORDERS_PAID.value == "orders/paid"
        assert WebhookTopic.ORDERS_UPDATED.value == "orders/updated"
        assert WebhookTopic.APP_UNINSTALLED.value == "app/uninstalled"
        assert WebhookTopic.CUSTOMERS_REDACT.value == "customers/redact"
        assert WebhookTopic.SHOP_REDACT.value == "shop/redact"


class TestWebhook:

    def test_defaults(self):
        webhook = _webhook()
        assert webhook.channel_name == ""
        assert isinstance(webhook.received_at, datetime)


class TestWebhookAck:

    def test_ok(self):
        assert WebhookAck(status_code=200, message="ok").ok is True
        assert WebhookAck(status_code=400, message="bad").ok is False
        assert WebhookAck(status_code=200, message="ok").data == {}


class TestChannel:
    """通道基类测试"""

    def test_handle_without_handler_returns_503(self):
        channel = ConcreteChannel("test")
        ack = channel.handle(_webhook())
        assert ack.status_code == 503

    def test_handle_sets_channel_name(self):
        received = []

        def handler(webhook):
            received.append(webhook)
            return WebhookAck(status_code=200, message="ok")

        channel = ConcreteChannel("test", handler)
        ack = channel.handle(_webhook())
        assert ack.ok
        assert received[0].channel_name == "test"

    def test_set_webhook_handler(self):
        channel = ConcreteChannel("test")
        channel.set_webhook_handler(
            lambda webhook: WebhookAck(status_code=204, message="done")
        )
        assert channel.handle(_webhook()).status_code == 204

    @pytest.mark.asyncio
    async def test_startup_shutdown(self):
        channel = ConcreteChannel("test")
        assert channel.is_running is False
        await channel.startup()
        assert channel.is_running is True
        await channel.shutdown()
        assert channel.is_running is False
        assert channel.startup_called and channel.shutdown_called

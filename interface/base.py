"""接口通道抽象层 - 统一的 webhook 协议

定义 Channel（通道）基类和 webhook 数据结构。
每个 Channel 代表一种事件来源（Shopify HTTP webhook、测试回放等）。

核心概念：
- Webhook: 统一的入站通知格式（Shopify → 系统）
- WebhookAck: 统一的处理结果（系统 → Shopify），状态码决定对方是否重试
- Channel: 通道抽象基类，负责接收与格式转换
- WebhookHandler: 处理回调类型（通常由 WebhookProcessor 实现）

设计原则：
- 通道只负责接收和格式转换，业务逻辑完全由 WebhookHandler 处理
- “不适用”的通知同样返回 200，避免 Shopify 反复重试
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional


class WebhookTopic(Enum):
    """Shopify webhook 主题"""
    ORDERS_PAID = "orders/paid"
    ORDERS_UPDATED = "orders/updated"
    APP_UNINSTALLED = "app/uninstalled"
    CUSTOMERS_REDACT = "customers/redact"
    SHOP_REDACT = "shop/redact"


@dataclass
class Webhook:
    """统一入站通知格式

    Attributes:
        topic: 通知主题
        shop_domain: 来源店铺域名（X-Shopify-Shop-Domain 或 payload 字段）
        payload: 原始 JSON 负载
        channel_name: 来源通道名称（由 Channel 自动填充）
        received_at: 接收时间
    """
    topic: WebhookTopic
    shop_domain: Optional[str]
    payload: Dict[str, Any]
    channel_name: str = ""
    received_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


@dataclass
class WebhookAck:
    """统一处理结果

    Attributes:
        status_code: HTTP 状态码（200 确认、400 数据无效、500 需要重试）
        message: 说明文本
        data: 附加数据（如删除数量）
    """
    status_code: int
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status_code < 400


# 处理回调类型：接收 Webhook，返回 WebhookAck
WebhookHandler = Callable[[Webhook], WebhookAck]


class Channel(ABC):
    """通道抽象基类

    Channel 的职责：
    1. 接收原始通知，转换为统一的 Webhook 格式
    2. 调用 webhook_handler 处理，获取 WebhookAck
    3. 将 WebhookAck 转换为通道特定的响应
    """

    def __init__(self, name: str,
                 webhook_handler: Optional[WebhookHandler] = None):
        """
        Args:
            name: 通道名称标识（如 'web'）
            webhook_handler: 处理回调
        """
        self.name = name
        self.running = False
        self._webhook_handler = webhook_handler

    def set_webhook_handler(self, handler: WebhookHandler):
        """设置处理回调"""
        self._webhook_handler = handler

    @abstractmethod
    async def startup(self):
        """启动通道，成功后应设置 self.running = True。"""

    @abstractmethod
    async def shutdown(self):
        """关闭通道，关闭后应设置 self.running = False。"""

    def handle(self, webhook: Webhook) -> WebhookAck:
        """统一的通知处理入口。

        未设置处理回调时返回 503，让 Shopify 稍后重试。
        """
        if not self._webhook_handler:
            return WebhookAck(status_code=503, message="No webhook handler")

        webhook.channel_name = self.name
        return self._webhook_handler(webhook)

    @property
    def is_running(self) -> bool:
        """检查通道是否正在运行"""
        return self.running

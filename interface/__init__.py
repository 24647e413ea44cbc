"""用户接口模块 - Shopify 事件的接收与分发

核心组件：
- Channel: 通道抽象基类
- Webhook / WebhookAck: 统一的通知与处理结果格式
- WebhookProcessor: 按主题把通知分发给生命周期处理器与商户管理服务
- WebChannel: 基于 FastAPI 的 webhook 与店面 API 通道

架构设计：
    Shopify ──→ 通道 ──→ Webhook ──→ WebhookProcessor ──→ EntryLifecycle
                 ←── WebhookAck ←──────────┘
"""
from interface.base import (
    Channel, Webhook, WebhookAck, WebhookHandler, WebhookTopic
)
from interface.webhooks import (
    WebhookProcessor, parse_order_paid, parse_order_updated
)

# Web 通道
try:
    from interface.web.channel import WebChannel
    _has_web = True
except ImportError:
    _has_web = False
    WebChannel = None

__all__ = [
    "Channel",
    "Webhook",
    "WebhookAck",
    "WebhookHandler",
    "WebhookTopic",
    "WebhookProcessor",
    "parse_order_paid",
    "parse_order_updated",
]

if _has_web:
    __all__.append("WebChannel")

"""Web 通道 - Shopify webhook 与店面 API

基于 FastAPI 提供：
1. Shopify webhook 接收（订单支付、订单更新、卸载、GDPR 删除）
2. 店面 API（顾客选择、购物车资格查询、奖池查询）
3. 商户设置与后台统计

使用方式：
    ```python
    channel = WebChannel(webhook_handler=processor, lifecycle=lifecycle,
                         qualification=qualification, merchants=merchants)
    await channel.startup()
    ```
"""
import asyncio
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from loguru import logger

from business.errors import NotFoundError, PersistenceError, ValidationError
from business.events import CustomerOptIn
from business.lifecycle import EntryLifecycle
from business.merchants import MerchantService
from business.qualification import QualificationService
from interface.base import Channel, Webhook, WebhookHandler, WebhookTopic


def _json_value(obj: Any) -> Any:
    """把 Decimal / 日期转换为 JSON 可序列化的值"""
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    result = {}
    for key, value in data.items():
        if isinstance(value, list):
            result[key] = [
                _jsonable(item) if isinstance(item, dict) else _json_value(item)
                for item in value
            ]
        elif isinstance(value, dict):
            result[key] = _jsonable(value)
        else:
            result[key] = _json_value(value)
    return result


def _merchant_json(merchant) -> Dict[str, Any]:
    return {
        "shopDomain": merchant.shop_domain,
        "threshold": float(merchant.threshold),
        "billingPlan": merchant.billing_plan,
        "isActive": merchant.is_active,
    }


def _pool_json(status) -> Dict[str, Any]:
    return {
        "currentAmount": float(status.current_amount),
        "period": status.period,
        "periodLabel": status.period_label,
        "nextDrawing": status.next_drawing.isoformat(),
        "formattedAmount": status.formatted_amount,
    }


class WebChannel(Channel):
    """Shopify Web 通道

    路由：
    - POST /webhooks/orders/paid       → 创建待确认抽奖资格
    - POST /webhooks/orders/updated    → 退款停用
    - POST /webhooks/app/uninstalled   → 停用商户
    - POST /webhooks/customers/redact  → 匿名化顾客数据
    - POST /webhooks/shop/redact       → 删除店铺数据
    - POST /api/opt-in                 → 顾客参与/放弃
    - POST /api/cart-check             → 购物车资格查询
    - GET  /api/prize-pool             → 当前奖池
    - GET  /api/prize-pools            → 历史奖池
    - GET  /api/merchant?shop=         → 商户设置与建议门槛（首次访问自动创建）
    - POST /api/settings?shop=         → 更新门槛与计费方案
    - GET  /api/dashboard?shop=        → 后台统计
    - GET  /health                     → 健康检查
    """

    def __init__(
        self,
        webhook_handler: Optional[WebhookHandler] = None,
        lifecycle: Optional[EntryLifecycle] = None,
        qualification: Optional[QualificationService] = None,
        merchants: Optional[MerchantService] = None,
        host: str = "0.0.0.0",
        port: int = 8080,
    ):
        super().__init__("web", webhook_handler)
        self.lifecycle = lifecycle
        self.qualification = qualification
        self.merchants = merchants
        self.host = host
        self.port = port
        self.app = None
        self._server_thread: Optional[threading.Thread] = None
        self._server = None  # uvicorn.Server 实例

    def _create_app(self):
        """创建 FastAPI 应用"""
        from fastapi import FastAPI, Header, HTTPException
        from fastapi.responses import JSONResponse

        app = FastAPI(
            title="RaffleBee",
            description="Shopify 抽奖应用 - webhook 与店面 API",
            version="1.0.0",
        )

        def _receive(topic: WebhookTopic, data: dict,
                     shop_domain: Optional[str]) -> JSONResponse:
            ack = self.handle(Webhook(
                topic=topic, shop_domain=shop_domain, payload=data
            ))
            key = "message" if ack.ok else "error"
            return JSONResponse(
                status_code=ack.status_code,
                content={key: ack.message, **_jsonable(ack.data)},
            )

        def _raise_http(error: Exception):
            if isinstance(error, ValidationError):
                raise HTTPException(status_code=400, detail=str(error))
            if isinstance(error, NotFoundError):
                raise HTTPException(status_code=404, detail=str(error))
            raise HTTPException(status_code=500, detail="Internal server error")

        # ==================== Webhook 路由 ====================

        @app.post("/webhooks/orders/paid")
        def orders_paid(data: dict, x_shopify_shop_domain: Optional[str] = Header(None)):
            return _receive(WebhookTopic.ORDERS_PAID, data, x_shopify_shop_domain)

        @app.post("/webhooks/orders/updated")
        def orders_updated(data: dict, x_shopify_shop_domain: Optional[str] = Header(None)):
            return _receive(WebhookTopic.ORDERS_UPDATED, data, x_shopify_shop_domain)

        @app.post("/webhooks/app/uninstalled")
        def app_uninstalled(data: dict, x_shopify_shop_domain: Optional[str] = Header(None)):
            return _receive(WebhookTopic.APP_UNINSTALLED, data, x_shopify_shop_domain)

        @app.post("/webhooks/customers/redact")
        def customers_redact(data: dict, x_shopify_shop_domain: Optional[str] = Header(None)):
            return _receive(WebhookTopic.CUSTOMERS_REDACT, data, x_shopify_shop_domain)

        @app.post("/webhooks/shop/redact")
        def shop_redact(data: dict, x_shopify_shop_domain: Optional[str] = Header(None)):
            return _receive(WebhookTopic.SHOP_REDACT, data, x_shopify_shop_domain)

        # ==================== 店面 API ====================

        @app.post("/api/opt-in")
        def opt_in(data: dict):
            """顾客参与/放弃抽奖"""
            try:
                event = CustomerOptIn(
                    order_id=data.get("orderId"),
                    shop_domain=data.get("shopDomain"),
                    opted_in=data.get("customerOptIn"),
                )
                outcome = self.lifecycle.handle_customer_decision(event)
            except (ValidationError, NotFoundError, PersistenceError) as e:
                _raise_http(e)

            if outcome.applied:
                message = (
                    "Entry activated!" if event.opted_in else "Opt-out recorded"
                )
            else:
                message = f"No change, entry is {outcome.state.value.lower()}"
            return {
                "success": True,
                "status": outcome.status.value,
                "state": outcome.state.value,
                "message": message,
            }

        @app.post("/api/cart-check")
        def cart_check(data: dict):
            """购物车资格查询（失败时返回 showBanner=false）"""
            result = self.qualification.check_cart(
                data.get("shop"), data.get("cartTotal")
            )
            if not result.eligible:
                return {"showBanner": False}
            return {
                "showBanner": True,
                "qualified": result.qualified,
                "threshold": float(result.threshold),
                "prizeAmount": result.prize_display,
                "cartTotal": float(result.cart_total),
            }

        @app.get("/api/prize-pool")
        def prize_pool():
            """当前季度奖池与下一次开奖日期"""
            try:
                status = self.qualification.prize_pool_status()
            except Exception as e:
                logger.error(f"Prize pool API error: {e}")
                raise HTTPException(status_code=500, detail="Internal server error")
            return _pool_json(status)

        @app.get("/api/prize-pools")
        def prize_pool_history():
            """历史奖池（按季度倒序）"""
            return [_pool_json(status) for status in self.qualification.pool_history()]

        # ==================== 商户设置 ====================

        @app.get("/api/merchant")
        def merchant_settings(shop: str):
            """商户设置，附带平均订单额与建议门槛"""
            try:
                overview = self.merchants.settings_overview(shop)
            except ValidationError as e:
                _raise_http(e)
            return {
                **_merchant_json(overview["merchant"]),
                "averageOrderValue": float(overview["average_order_value"]),
                "suggestedThreshold": float(overview["suggested_threshold"]),
            }

        @app.post("/api/settings")
        def update_settings(shop: str, data: dict):
            try:
                merchant = self.merchants.update_settings(
                    shop, data.get("threshold"), data.get("billingPlan")
                )
            except (ValidationError, NotFoundError) as e:
                _raise_http(e)
            return {"success": True, "merchant": _merchant_json(merchant)}

        @app.get("/api/dashboard")
        def dashboard(shop: str):
            stats = self.merchants.dashboard(shop)
            if stats is None:
                raise HTTPException(status_code=404, detail="Merchant not found")
            return _jsonable(stats)

        @app.get("/health")
        def health_check():
            return {"status": "healthy", "service": "rafflebee"}

        return app

    async def startup(self):
        """启动 Web 服务器（在独立线程中运行 uvicorn）"""
        import uvicorn

        self.app = self._create_app()
        self.running = True

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            loop="asyncio",
        )
        self._server = uvicorn.Server(config)
        # 信号由 app.py 统一管理
        self._server.install_signal_handlers = lambda: None

        def run_server():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                loop.run_until_complete(self._server.serve())
            except Exception as e:
                logger.error(f"Web server stopped with error: {e}")
            finally:
                loop.close()

        self._server_thread = threading.Thread(target=run_server, daemon=True)
        self._server_thread.start()
        logger.info(f"Web channel started: http://{self.host}:{self.port}")

    async def shutdown(self):
        """停止 Web 服务器"""
        self.running = False

        if self._server is not None:
            self._server.should_exit = True
            if self._server_thread and self._server_thread.is_alive():
                self._server_thread.join(timeout=3.0)
            if self._server_thread and self._server_thread.is_alive():
                logger.warning("Web server did not stop within 3s, forcing exit")
                self._server.force_exit = True
                self._server_thread.join(timeout=2.0)
            self._server = None
            self._server_thread = None

        logger.info("Web channel stopped")

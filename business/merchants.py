"""商户管理 —— 安装、设置、卸载、数据删除与后台统计。

- 首次安装或首次访问设置页时创建商户（默认门槛来自 settings，默认
  STANDARD 方案），门槛为 0 时抽奖保持关闭
- 卸载应用只停用商户，不删除数据；重新安装时重新激活
- 顾客数据删除请求：匿名化该顾客的抽奖资格，奖池贡献保持不变
- 店铺数据删除请求：删除商户，抽奖资格与计费记录级联删除
"""
from decimal import Decimal
from typing import Any, Dict, Optional

from loguru import logger

from business.errors import NotFoundError, ValidationError
from business.fees import BillingPlan, quantize_money, to_money
from business.qualification import suggest_threshold
from config.settings import settings
from database import DatabaseManager
from database.models import Merchant


def parse_billing_plan(value: Any) -> BillingPlan:
    """解析计费方案，未知值视为校验错误。"""
    try:
        return BillingPlan(str(value).strip().upper())
    except ValueError:
        raise ValidationError(
            f"Unknown billing plan: {value!r}, expected one of "
            f"{[plan.value for plan in BillingPlan]}"
        )


class MerchantService:
    """商户管理服务"""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    def install(self, shop_domain: str) -> Merchant:
        """安装应用：获取或创建商户，已停用的商户会被重新激活。"""
        if not shop_domain:
            raise ValidationError("shop_domain is required")
        merchant = self.db.merchants.get_or_create(
            shop_domain, threshold=settings.default_threshold,
            billing_plan=BillingPlan.STANDARD.value
        )
        if not merchant.is_active:
            merchant = self.db.merchants.update_settings(
                shop_domain, is_active=True
            )
            logger.info(f"Merchant reactivated: {shop_domain}")
        return merchant

    def get_settings(self, shop_domain: str) -> Merchant:
        """读取商户设置（首次访问时自动创建）。"""
        merchant = self.db.merchants.get_by_shop(shop_domain)
        if merchant is None:
            merchant = self.install(shop_domain)
            logger.info(f"Merchant created on first settings access: {shop_domain}")
        return merchant

    def settings_overview(self, shop_domain: str) -> Dict[str, Any]:
        """设置页数据：商户配置、平均订单额与建议门槛（平均订单额 × 上浮系数）。"""
        merchant = self.get_settings(shop_domain)
        amounts = self.db.entries.get_active_amounts(merchant.id)
        average = (
            quantize_money(sum(amounts) / len(amounts))
            if amounts else Decimal("0.00")
        )
        return {
            "merchant": merchant,
            "average_order_value": average,
            "suggested_threshold": suggest_threshold(amounts),
        }

    def update_settings(self, shop_domain: str, threshold: Any,
                        billing_plan: Any) -> Merchant:
        """更新门槛与计费方案。

        Raises:
            ValidationError: 门槛为负或格式错误、计费方案未知。
            NotFoundError: 商户不存在。
        """
        amount = to_money(threshold, "threshold")
        if amount < 0:
            raise ValidationError(f"threshold must not be negative: {amount}")
        plan = parse_billing_plan(billing_plan)

        merchant = self.db.merchants.update_settings(
            shop_domain, threshold=amount, billing_plan=plan.value
        )
        if merchant is None:
            raise NotFoundError(f"Merchant not found: {shop_domain}")
        logger.info(
            f"Settings updated for {shop_domain}: threshold ${amount}, "
            f"plan {plan.value}"
        )
        return merchant

    def uninstall(self, shop_domain: str) -> bool:
        """卸载应用：停用商户。返回是否找到商户。"""
        found = self.db.merchants.deactivate(shop_domain)
        logger.info(f"App uninstalled for shop: {shop_domain}")
        return found

    def redact_customer(self, shop_domain: str,
                        customer_id: Optional[str],
                        customer_email: Optional[str]) -> int:
        """匿名化顾客数据，返回受影响的抽奖资格数量。"""
        merchant = self.db.merchants.get_by_shop(shop_domain)
        if merchant is None:
            logger.info(f"Merchant not found for redact request: {shop_domain}")
            return 0

        with self.db.transaction() as session:
            order_ids = self.db.entries.redact_customer(
                merchant.id,
                str(customer_id) if customer_id is not None else None,
                customer_email, session
            )
            self.db.transactions.redact_descriptions(
                merchant.id, order_ids, session
            )

        logger.info(
            f"Customer data redacted for {shop_domain}. "
            f"Affected entries: {len(order_ids)}"
        )
        return len(order_ids)

    def redact_shop(self, shop_domain: str) -> Optional[Dict[str, int]]:
        """删除店铺全部数据，返回删除数量，商户不存在返回 None。"""
        counts = self.db.merchants.delete_with_records(shop_domain)
        if counts is None:
            logger.info(f"Merchant not found for shop redact: {shop_domain}")
            return None
        logger.info(
            f"Shop data redacted for {shop_domain}. Deleted merchant, "
            f"{counts['entries']} entries, {counts['transactions']} transactions"
        )
        return counts

    def dashboard(self, shop_domain: str) -> Optional[Dict[str, Any]]:
        """商户后台统计：有效资格数、订单总额、平均订单额、最近记录。"""
        merchant = self.db.merchants.get_by_shop(shop_domain)
        if merchant is None:
            return None

        stats = self.db.entries.get_active_stats(merchant.id)
        count = stats["count"]
        revenue = quantize_money(stats["revenue"])
        average = (
            quantize_money(revenue / count) if count else Decimal("0.00")
        )
        recent = self.db.entries.get_recent(
            merchant.id, limit=settings.dashboard_recent_limit
        )

        return {
            "shop_domain": merchant.shop_domain,
            "threshold": Decimal(str(merchant.threshold)),
            "billing_plan": merchant.billing_plan,
            "is_active": merchant.is_active,
            "total_entries": count,
            "total_revenue": revenue,
            "average_order_value": average,
            "entries": [
                {
                    "order_id": e.order_id,
                    "customer_email": e.customer_email,
                    "customer_name": e.customer_name,
                    "order_amount": Decimal(str(e.order_amount)),
                    "period": e.period,
                    "is_active": e.is_active,
                    "created_at": e.created_at,
                }
                for e in recent
            ],
        }

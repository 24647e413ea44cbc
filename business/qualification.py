"""资格评估 —— 决定是否向顾客展示抽奖横幅。

规则（按顺序）：
1. 商户不存在、未激活或门槛 <= 0：完全不展示（区别于“未达标”）
2. 否则可以展示，``qualified = 金额 >= 门槛``（等于门槛即达标）
3. 展示的奖金为当前季度奖池金额；奖池尚不存在时使用固定基准值，
   基准值只用于展示，不会创建奖池记录

查询类接口失败时一律“安全失败”（返回不展示），因为横幅是可选 UI。
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from business.errors import ValidationError
from business.events import CartCheckQuery
from business.fees import quantize_money
from business.periods import current_period, format_period, period_end
from config.settings import settings
from database import DatabaseManager
from database.models import Merchant


@dataclass(frozen=True)
class Qualification:
    """资格评估结果

    Attributes:
        eligible: 是否可以展示横幅
        qualified: 金额是否达到门槛
        threshold: 商户门槛（不可展示时为 None）
        prize_amount: 展示的奖金金额
        prize_display: 格式化的奖金文本，如 ``$1,000``
        cart_total: 被评估的金额
    """
    eligible: bool
    qualified: bool = False
    threshold: Optional[Decimal] = None
    prize_amount: Optional[Decimal] = None
    prize_display: Optional[str] = None
    cart_total: Optional[Decimal] = None


NOT_ELIGIBLE = Qualification(eligible=False)


@dataclass(frozen=True)
class PrizePoolStatus:
    """当前季度奖池状态

    Attributes:
        period: 季度标识
        current_amount: 奖池金额（奖池不存在时为 0）
        is_active: 奖池是否激活
        next_drawing: 下一次开奖日期（季度最后一天）
        formatted_amount: 格式化金额，如 ``$1,234.50``
        period_label: 展示文本，如 ``2024 Q2 (Apr-Jun)``
    """
    period: str
    current_amount: Decimal
    is_active: bool
    next_drawing: date
    formatted_amount: str
    period_label: str


def format_prize(amount: Decimal, cents: bool = False) -> str:
    """格式化美元金额。"""
    if cents:
        return f"${quantize_money(amount):,.2f}"
    return f"${amount:,.0f}"


def is_sweepstakes_enabled(merchant: Optional[Merchant]) -> bool:
    """商户存在、已激活且门槛大于 0 时才启用抽奖。"""
    return (
        merchant is not None
        and bool(merchant.is_active)
        and Decimal(str(merchant.threshold)) > 0
    )


def evaluate(merchant: Optional[Merchant], candidate_amount: Decimal,
             pool_amount: Optional[Decimal] = None,
             baseline: Optional[Decimal] = None) -> Qualification:
    """评估金额是否达到商户门槛。

    Args:
        merchant: 商户对象（可为 None）。
        candidate_amount: 购物车或订单金额。
        pool_amount: 当前季度奖池金额，奖池不存在时传 None。
        baseline: 奖池不存在时展示的金额，默认取 settings。

    Returns:
        Qualification 评估结果。
    """
    if not is_sweepstakes_enabled(merchant):
        return NOT_ELIGIBLE

    threshold = Decimal(str(merchant.threshold))
    if pool_amount is None:
        pool_amount = (
            baseline if baseline is not None
            else settings.default_prize_amount
        )

    return Qualification(
        eligible=True,
        qualified=candidate_amount >= threshold,
        threshold=threshold,
        prize_amount=pool_amount,
        prize_display=format_prize(pool_amount),
        cart_total=candidate_amount,
    )


def suggest_threshold(order_totals: Iterable[Decimal],
                      markup: Optional[Decimal] = None) -> Decimal:
    """根据历史已支付订单的平均金额建议门槛（平均值 × 上浮系数）。

    没有历史订单时返回 0。
    """
    totals = [Decimal(str(total)) for total in order_totals]
    if not totals:
        return Decimal("0.00")
    if markup is None:
        markup = settings.suggested_threshold_markup
    average = sum(totals) / len(totals)
    return quantize_money(average * markup)


class QualificationService:
    """只读查询服务：购物车资格查询与奖池状态查询。"""

    def __init__(self, db: DatabaseManager,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def check_cart(self, shop_domain: str, cart_total) -> Qualification:
        """购物车资格查询。

        参数缺失、格式错误或数据库故障时返回不展示，不抛出异常。
        """
        try:
            query = CartCheckQuery(shop_domain=shop_domain, cart_total=cart_total)
        except ValidationError as e:
            logger.warning(f"Cart check rejected: {e}")
            return NOT_ELIGIBLE

        try:
            merchant = self.db.merchants.get_by_shop(query.shop_domain)
            if not is_sweepstakes_enabled(merchant):
                return NOT_ELIGIBLE
            pool = self.db.prize_pools.read_pool(current_period(self._clock()))
        except SQLAlchemyError as e:
            logger.warning(f"Cart check failed for {shop_domain}, hiding banner: {e}")
            return NOT_ELIGIBLE

        return evaluate(
            merchant, query.cart_total,
            pool.current_amount if pool.exists else None
        )

    def prize_pool_status(self, now: Optional[datetime] = None) -> PrizePoolStatus:
        """当前季度奖池状态与下一次开奖日期。"""
        period = current_period(now or self._clock())
        return _pool_status(self.db.prize_pools.read_pool(period))

    def pool_history(self) -> List[PrizePoolStatus]:
        """全部季度奖池（按季度倒序），用于后台报表。"""
        return [_pool_status(pool) for pool in self.db.prize_pools.list_pools()]


def _pool_status(pool) -> PrizePoolStatus:
    amount = quantize_money(pool.current_amount)
    return PrizePoolStatus(
        period=pool.period,
        current_amount=amount,
        is_active=pool.is_active,
        next_drawing=period_end(pool.period),
        formatted_amount=format_prize(amount, cents=True),
        period_label=format_period(pool.period),
    )

"""入站事件定义。

核心只依赖这些事件的形状，不关心它们来自 webhook、HTTP API
还是测试代码。每个事件在构造时校验必填字段，缺失或格式错误时
抛出 ValidationError，不会产生任何状态变化。
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from business.errors import ValidationError
from business.fees import parse_amount


def _require_text(name: str, value) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value).strip()


@dataclass(frozen=True)
class OrderPaid:
    """订单已支付（orders/paid webhook）

    Attributes:
        order_id: 订单号
        shop_domain: 店铺域名
        subtotal: 税前小计
        billing_country: 账单地址国家代码，缺失时为 None
        customer_email: 顾客邮箱
        customer_id: 顾客ID（可选）
        customer_name: 顾客姓名（可选）
        order_number: 店铺内订单编号，仅用于计费描述（可选）
    """
    order_id: str
    shop_domain: str
    subtotal: Decimal
    billing_country: Optional[str]
    customer_email: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    order_number: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "order_id", _require_text("order_id", self.order_id))
        object.__setattr__(self, "shop_domain", _require_text("shop_domain", self.shop_domain))
        object.__setattr__(self, "subtotal", parse_amount(self.subtotal, "subtotal"))


@dataclass(frozen=True)
class OrderUpdated:
    """订单更新（orders/updated webhook，含退款金额）"""
    order_id: str
    shop_domain: str
    subtotal: Decimal
    total_refunded: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        object.__setattr__(self, "order_id", _require_text("order_id", self.order_id))
        object.__setattr__(self, "shop_domain", _require_text("shop_domain", self.shop_domain))
        object.__setattr__(self, "subtotal", parse_amount(self.subtotal, "subtotal"))
        refunded = self.total_refunded if self.total_refunded is not None else "0"
        object.__setattr__(self, "total_refunded", parse_amount(refunded, "total_refunded"))


@dataclass(frozen=True)
class CustomerOptIn:
    """顾客在结账后选择参与或放弃抽奖"""
    order_id: str
    shop_domain: str
    opted_in: bool

    def __post_init__(self) -> None:
        object.__setattr__(self, "order_id", _require_text("order_id", self.order_id))
        object.__setattr__(self, "shop_domain", _require_text("shop_domain", self.shop_domain))
        if not isinstance(self.opted_in, bool):
            raise ValidationError("opted_in must be a boolean")


@dataclass(frozen=True)
class CartCheckQuery:
    """购物车资格查询（只读）"""
    shop_domain: str
    cart_total: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "shop_domain", _require_text("shop_domain", self.shop_domain))
        object.__setattr__(self, "cart_total", parse_amount(self.cart_total, "cart_total"))


@dataclass(frozen=True)
class PrizePoolQuery:
    """当前季度奖池查询（只读，无参数）"""

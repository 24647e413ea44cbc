"""手续费与奖池贡献计算。

- ENTERPRISE 方案费率 2%，其他方案（STANDARD、未设置、未知值）费率 3%
- 奖池贡献 = 手续费 × 50%
- 金额一律按分四舍五入（ROUND_HALF_UP），结果可逐位复现
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional, Union

from business.errors import ValidationError

CENT = Decimal("0.01")
ENTERPRISE_RATE = Decimal("0.02")
STANDARD_RATE = Decimal("0.03")
CONTRIBUTION_SHARE = Decimal("0.5")


class BillingPlan(str, Enum):
    """商户计费方案"""
    STANDARD = "STANDARD"       # 月费低，手续费 3%
    ENTERPRISE = "ENTERPRISE"   # 月费高，手续费 2%


def quantize_money(value: Decimal) -> Decimal:
    """按分四舍五入。"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, field_name: str = "amount") -> Decimal:
    """把字符串/数字解析为 Decimal，不做舍入。

    float 先转为字符串再解析，避免二进制误差进入金额。门槛比较使用
    原始精度，只有写入或计费时才按分舍入。

    Raises:
        ValidationError: 值缺失或无法解析为有限数字。
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    return amount


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """把字符串/数字转换为精确到分的 Decimal。"""
    return quantize_money(parse_amount(value, field_name))


def fee_rate(plan: Optional[Union[BillingPlan, str]]) -> Decimal:
    """返回计费方案对应的费率。"""
    if plan == BillingPlan.ENTERPRISE:
        return ENTERPRISE_RATE
    return STANDARD_RATE


def compute_fee(order_amount: Decimal,
                plan: Optional[Union[BillingPlan, str]]) -> Decimal:
    """计算订单的手续费。

    Example:
        >>> compute_fee(Decimal("100"), BillingPlan.STANDARD)
        Decimal('3.00')
    """
    return quantize_money(Decimal(order_amount) * fee_rate(plan))


def compute_contribution(fee: Decimal) -> Decimal:
    """计算手续费中进入奖池的部分。"""
    return quantize_money(Decimal(fee) * CONTRIBUTION_SHARE)

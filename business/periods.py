"""季度（抽奖周期）计算。

周期标识格式为 ``YYYY-Qn``，季度 = ceil(月份 / 3)。
所有函数都是纯函数，不依赖当前时间，时钟读数由调用方传入。
"""
import calendar
import re
from datetime import date, datetime
from typing import Tuple, Union

from business.errors import ValidationError

_PERIOD_PATTERN = re.compile(r"^(\d{4})-Q([1-4])$")

_QUARTER_LABELS = {
    1: "Q1 (Jan-Mar)",
    2: "Q2 (Apr-Jun)",
    3: "Q3 (Jul-Sep)",
    4: "Q4 (Oct-Dec)",
}


def current_period(clock_time: Union[datetime, date]) -> str:
    """根据时钟读数返回所在季度的周期标识。

    Args:
        clock_time: 时间点（datetime 或 date）。

    Returns:
        周期标识，如 ``2024-Q2``。
    """
    quarter = (clock_time.month + 2) // 3
    return f"{clock_time.year}-Q{quarter}"


def parse_period(period_key: str) -> Tuple[int, int]:
    """解析周期标识。

    Returns:
        (年份, 季度) 元组。

    Raises:
        ValidationError: 格式不是 ``YYYY-Qn``。
    """
    match = _PERIOD_PATTERN.match(period_key or "")
    if not match:
        raise ValidationError(
            f"Invalid period key: {period_key!r}, expected YYYY-Qn"
        )
    return int(match.group(1)), int(match.group(2))


def period_end(period_key: str) -> date:
    """返回该季度最后一个月的最后一天（即下一次开奖日期）。"""
    year, quarter = parse_period(period_key)
    end_month = quarter * 3
    last_day = calendar.monthrange(year, end_month)[1]
    return date(year, end_month, last_day)


def format_period(period_key: str) -> str:
    """格式化为展示文本，如 ``2024 Q2 (Apr-Jun)``。"""
    year, quarter = parse_period(period_key)
    return f"{year} {_QUARTER_LABELS[quarter]}"

"""抽奖业务异常定义。

- ValidationError: 事件缺少必填字段或字段格式错误，不产生任何状态变化
- NotFoundError: 必需的商户或抽奖资格不存在
- PersistenceError: 数据库不可用或冲突，整个事件失败且不留下部分写入

“不适用”（商户未激活、未达门槛、非美国订单、重复投递）不是异常，
由生命周期处理器以 SKIPPED 结果返回。
"""


class SweepstakesError(Exception):
    """Base exception for sweepstakes processing."""


class ValidationError(SweepstakesError, ValueError):
    """Raised when an event or setting is missing fields or malformed."""


class NotFoundError(SweepstakesError):
    """Raised when a required merchant or entry does not exist."""


class PersistenceError(SweepstakesError):
    """Raised when the store fails while applying an event."""

"""全局配置管理

所有可配置项均通过 .env 文件或环境变量设置，运行时自动加载到此处。

使用方式：
    1. 手动创建 .env 文件（参考 README 中的字段说明）
    2. 或直接设置环境变量，如 ``DATABASE_URL=sqlite:///data/rafflebee.db``
"""
from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 数据库 ==========
    database_url: str = "sqlite:///data/rafflebee.db"
    sqlite_busy_timeout: float = 30.0  # 并发写入时等待锁的秒数

    # ========== 抽奖规则 ==========
    eligible_country: str = "US"
    default_threshold: Decimal = Decimal("0")  # 新商户默认门槛（0 = 未启用）
    default_prize_amount: Decimal = Decimal("1000")  # 奖池不存在时的展示金额
    suggested_threshold_markup: Decimal = Decimal("1.15")

    # ========== 商户后台 ==========
    dashboard_recent_limit: int = 50

    # ========== Web 服务配置 ==========
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()

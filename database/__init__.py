"""数据库模块 - 商户、抽奖资格、计费记录与奖池的持久化

核心组件：
- DatabaseManager: 统一门面，组合全部子仓库
- DatabaseConnection: 引擎与会话管理
- PoolSnapshot: 奖池只读快照
"""
from database.connection import DatabaseConnection
from database.manager import DatabaseManager
from database.system_repos import PoolSnapshot

__all__ = [
    "DatabaseConnection",
    "DatabaseManager",
    "PoolSnapshot",
]

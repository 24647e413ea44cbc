"""数据库管理器 —— 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，组合了所有子仓库：

1. **子仓库访问**（细粒度）：
   通过 ``db.merchants``、``db.entries``、``db.transactions``、
   ``db.prize_pools`` 直接访问，返回 ORM 对象或快照。

2. **事务作用域**：
   ``db.transaction()`` 返回一个上下文管理器，正常退出时提交，
   出现异常时回滚，用于把同一事件的多次写入放在一个事务里。
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from .connection import DatabaseConnection
from .entity_repos import MerchantRepository
from .business_repos import EntryRepository, TransactionRepository
from .system_repos import PrizePoolRepository


class DatabaseManager:
    """数据库管理器 —— 统一门面。

    Attributes:
        conn: 数据库连接管理器。
        merchants: 商户仓库。
        entries: 抽奖资格仓库。
        transactions: 计费记录仓库。
        prize_pools: 奖池仓库。

    Example::

        db = DatabaseManager("sqlite:///data/rafflebee.db")
        db.create_tables()

        merchant = db.merchants.get_or_create("demo.myshopify.com")
        with db.transaction() as session:
            db.prize_pools.apply_contribution("2024-Q2", amount, session)
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
        """
        # 基础设施层
        self.conn = DatabaseConnection(database_url)

        # 实体仓库
        self.merchants = MerchantRepository(self.conn)

        # 业务记录仓库
        self.entries = EntryRepository(self.conn)
        self.transactions = TransactionRepository(self.conn)

        # 奖池账本
        self.prize_pools = PrizePoolRepository(self.conn)

    # ================================================================
    # 基础设施方法
    # ================================================================

    def create_tables(self) -> None:
        """创建所有数据库表（幂等操作）。"""
        self.conn.create_tables()

    def get_session(self) -> Session:
        """获取数据库会话。"""
        return self.conn.get_session()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """事务作用域：正常退出提交，异常时回滚并继续抛出。"""
        session = self.conn.get_session()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    @property
    def database_url(self) -> str:
        """数据库连接URL。"""
        return self.conn.database_url

    @property
    def engine(self):
        """SQLAlchemy 引擎对象。"""
        return self.conn.engine

    def close(self) -> None:
        """关闭数据库连接，释放所有资源。"""
        self.conn.close()

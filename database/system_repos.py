"""系统数据仓库 —— 奖池账本。

奖池按季度划分、所有商户共享，是系统中唯一的多写者热点数据。
贡献金额通过单条“插入或原子累加”语句写入，不做先读后写，
并发的贡献不会丢失累加。奖池只增不减，没有手动扣减操作。
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from loguru import logger

from business.errors import ValidationError

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import PrizePool


@dataclass(frozen=True)
class PoolSnapshot:
    """奖池只读快照。

    Attributes:
        period: 季度标识。
        current_amount: 当前金额，奖池不存在时为 0。
        is_active: 是否激活，奖池不存在时为 False。
        exists: 奖池记录是否存在。
    """
    period: str
    current_amount: Decimal
    is_active: bool
    exists: bool


class PrizePoolRepository(BaseCRUD):
    """奖池 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def apply_contribution(self, period: str, amount: Decimal,
                           session: Optional[Session] = None) -> Decimal:
        """向指定季度奖池累加贡献金额。

        奖池不存在时以 ``current_amount = amount`` 创建（is_active=True），
        存在时执行 ``current_amount = current_amount + amount``，
        两种情况由同一条 upsert 语句原子完成。

        Args:
            period: 季度标识。
            amount: 贡献金额，不能为负。
            session: 外部会话（可选，传入时由调用方提交）。

        Returns:
            累加后的奖池金额。

        Raises:
            ValidationError: 金额为负。
        """
        if amount < 0:
            raise ValidationError(f"Contribution must not be negative: {amount}")

        def _do(sess):
            stmt = self._insert(PrizePool).values(
                period=period, current_amount=amount, is_active=True
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["period"],
                set_={
                    "current_amount": (
                        PrizePool.current_amount
                        + stmt.excluded.current_amount
                    )
                }
            )
            sess.execute(stmt)
            # 同一事务内读取，得到的是本次累加后的值
            return Decimal(str(sess.execute(
                select(PrizePool.current_amount).where(
                    PrizePool.period == period
                )
            ).scalar_one()))

        if session:
            new_total = _do(session)
        else:
            with self._get_session() as sess:
                new_total = _do(sess)
                sess.commit()

        logger.info(
            f"Prize pool {period}: +${amount}, total ${new_total}"
        )
        return new_total

    def read_pool(self, period: str,
                  session: Optional[Session] = None) -> PoolSnapshot:
        """读取奖池，不存在时返回金额 0、未激活的快照（不会创建记录）。"""
        def _query(sess):
            pool = sess.query(PrizePool).filter(
                PrizePool.period == period
            ).first()
            if pool is None:
                return PoolSnapshot(
                    period=period, current_amount=Decimal("0"),
                    is_active=False, exists=False
                )
            return PoolSnapshot(
                period=pool.period,
                current_amount=Decimal(str(pool.current_amount)),
                is_active=bool(pool.is_active),
                exists=True,
            )

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def list_pools(self, session: Optional[Session] = None
                   ) -> List[PoolSnapshot]:
        """按季度倒序列出全部奖池。"""
        def _query(sess):
            pools = sess.query(PrizePool).order_by(
                PrizePool.period.desc()
            ).all()
            return [
                PoolSnapshot(
                    period=p.period,
                    current_amount=Decimal(str(p.current_amount)),
                    is_active=bool(p.is_active),
                    exists=True,
                )
                for p in pools
            ]

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

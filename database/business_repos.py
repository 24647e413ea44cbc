"""业务记录仓库 —— 抽奖资格与计费记录的数据访问层。

Entry 与 Transaction 都以订单号为唯一键。创建使用条件插入
（冲突时什么都不做），状态变更使用比较并设置（UPDATE ... WHERE
status IN ...），调用方根据受影响行数判断本次调用是否真正生效，
从而保证重复投递的 webhook 不会重复产生副作用。
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import Entry, Transaction

REDACTED_EMAIL = "redacted@privacy.com"
REDACTED_NAME = "Redacted Customer"
REDACTED_DESCRIPTION = "Redacted transaction - customer data removed"


class EntryRepository(BaseCRUD):
    """抽奖资格 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_by_order(self, order_id: str,
                     session: Optional[Session] = None) -> Optional[Entry]:
        """按订单号查询抽奖资格。"""
        def _query(sess):
            return sess.query(Entry).filter(
                Entry.order_id == order_id
            ).first()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def create_if_absent(self, entry_data: Dict[str, Any],
                         session: Session) -> bool:
        """条件插入抽奖资格。

        必须在调用方的事务中执行，以便与计费记录一起提交。

        Args:
            entry_data: 字段字典，至少包含 order_id、merchant_id、
                order_amount、period。
            session: 外部会话。

        Returns:
            True 表示本次插入成功；False 表示该订单已存在记录。
        """
        stmt = self._insert(Entry).values(
            is_active=False, **entry_data
        ).on_conflict_do_nothing(index_elements=["order_id"])
        result = session.execute(stmt)
        return result.rowcount == 1

    def set_active(self, order_id: str, is_active: bool,
                   session: Session) -> int:
        """设置参与状态，返回受影响行数。"""
        result = session.execute(
            update(Entry)
            .where(Entry.order_id == order_id)
            .values(is_active=is_active)
        )
        return result.rowcount

    def get_recent(self, merchant_id: int, limit: int = 50,
                   session: Optional[Session] = None) -> List[Entry]:
        """获取商户最近的抽奖资格（按创建时间倒序）。"""
        def _query(sess):
            return sess.query(Entry).filter(
                Entry.merchant_id == merchant_id
            ).order_by(Entry.created_at.desc(), Entry.id.desc()).limit(
                limit
            ).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def get_active_stats(self, merchant_id: int,
                         session: Optional[Session] = None
                         ) -> Dict[str, Any]:
        """统计商户有效抽奖资格数量与订单总额。

        Returns:
            ``{"count": int, "revenue": Decimal}``。
        """
        def _query(sess):
            count, revenue = sess.query(
                func.count(Entry.id), func.sum(Entry.order_amount)
            ).filter(
                Entry.merchant_id == merchant_id,
                Entry.is_active.is_(True)
            ).one()
            return {
                "count": count or 0,
                "revenue": Decimal(str(revenue or 0)),
            }

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def get_active_amounts(self, merchant_id: int,
                           session: Optional[Session] = None
                           ) -> List[Decimal]:
        """有效抽奖资格的订单金额列表。"""
        def _query(sess):
            rows = sess.query(Entry.order_amount).filter(
                Entry.merchant_id == merchant_id,
                Entry.is_active.is_(True)
            ).all()
            return [Decimal(str(amount)) for (amount,) in rows]

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def redact_customer(self, merchant_id: int,
                        customer_id: Optional[str],
                        customer_email: Optional[str],
                        session: Session) -> List[str]:
        """匿名化某顾客在该商户下的全部抽奖资格。

        按顾客ID或邮箱匹配，清空顾客ID、替换邮箱与姓名并停用资格。

        Returns:
            受影响的订单号列表。
        """
        conditions = []
        if customer_id:
            conditions.append(Entry.customer_id == customer_id)
        if customer_email:
            conditions.append(Entry.customer_email == customer_email)
        if not conditions:
            return []

        entries = session.query(Entry).filter(
            Entry.merchant_id == merchant_id, or_(*conditions)
        ).all()
        for entry in entries:
            entry.customer_id = None
            entry.customer_email = REDACTED_EMAIL
            entry.customer_name = REDACTED_NAME
            entry.is_active = False
        session.flush()
        return [entry.order_id for entry in entries]


class TransactionRepository(BaseCRUD):
    """计费记录 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_by_order(self, order_id: str,
                     session: Optional[Session] = None
                     ) -> Optional[Transaction]:
        """按订单号查询计费记录。"""
        def _query(sess):
            return sess.query(Transaction).filter(
                Transaction.order_id == order_id
            ).first()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def create_if_absent(self, transaction_data: Dict[str, Any],
                         session: Session) -> bool:
        """条件插入计费记录（状态固定为 PENDING）。

        Returns:
            True 表示本次插入成功。
        """
        stmt = self._insert(Transaction).values(
            status="PENDING", **transaction_data
        ).on_conflict_do_nothing(index_elements=["order_id"])
        result = session.execute(stmt)
        return result.rowcount == 1

    def compare_and_set_status(self, order_id: str,
                               expected: Iterable[str], new_status: str,
                               session: Session) -> bool:
        """仅当当前状态属于 expected 时更新为 new_status。

        并发的重复事件中只有一个能更新成功，其余返回 False。

        Returns:
            是否由本次调用完成了状态变更。
        """
        result = session.execute(
            update(Transaction)
            .where(
                Transaction.order_id == order_id,
                Transaction.status.in_(list(expected))
            )
            .values(status=new_status)
        )
        return result.rowcount == 1

    def redact_descriptions(self, merchant_id: int,
                            order_ids: List[str],
                            session: Session) -> int:
        """替换指定订单计费记录的描述文本。"""
        if not order_ids:
            return 0
        result = session.execute(
            update(Transaction)
            .where(
                Transaction.merchant_id == merchant_id,
                Transaction.order_id.in_(order_ids)
            )
            .values(description=REDACTED_DESCRIPTION)
        )
        return result.rowcount

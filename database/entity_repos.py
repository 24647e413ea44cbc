"""实体仓库 —— 商户的数据访问层。

商户在首次安装或首次访问设置页时创建，卸载时停用（不删除），
只有收到店铺数据删除请求时才真正删除（级联删除抽奖资格与计费记录）。
"""
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import Merchant, Entry, Transaction


class MerchantRepository(BaseCRUD):
    """商户 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_by_shop(self, shop_domain: str,
                    session: Optional[Session] = None
                    ) -> Optional[Merchant]:
        """按店铺域名查询商户。

        Args:
            shop_domain: 店铺域名。
            session: 外部会话（可选）。

        Returns:
            Merchant 对象，不存在返回 None。
        """
        def _query(sess):
            return sess.query(Merchant).filter(
                Merchant.shop_domain == shop_domain
            ).first()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def get_or_create(self, shop_domain: str,
                      threshold: Decimal = Decimal("0"),
                      billing_plan: str = "STANDARD",
                      session: Optional[Session] = None) -> Merchant:
        """获取或创建商户（按店铺域名匹配）。

        使用条件插入，并发的首次访问不会产生重复商户或唯一约束错误。

        Args:
            shop_domain: 店铺域名。
            threshold: 新建时的门槛金额。
            billing_plan: 新建时的计费方案。
            session: 外部会话（可选）。

        Returns:
            Merchant 对象。
        """
        def _do(sess):
            stmt = self._insert(Merchant).values(
                shop_domain=shop_domain,
                threshold=threshold,
                billing_plan=billing_plan,
                is_active=True,
            ).on_conflict_do_nothing(index_elements=["shop_domain"])
            sess.execute(stmt)
            return self.get_by_shop(shop_domain, session=sess)

        if session:
            return _do(session)

        with self._get_session() as sess:
            merchant = _do(sess)
            sess.commit()
            return merchant

    def update_settings(self, shop_domain: str,
                        session: Optional[Session] = None,
                        **values) -> Optional[Merchant]:
        """更新商户配置字段（threshold / billing_plan / is_active）。

        Returns:
            更新后的 Merchant 对象，不存在返回 None。
        """
        def _do(sess):
            merchant = self.get_by_shop(shop_domain, session=sess)
            if merchant is None:
                return None
            return self.update_by_id(
                Merchant, merchant.id, session=sess, **values
            )

        if session:
            return _do(session)

        with self._get_session() as sess:
            merchant = _do(sess)
            sess.commit()
            return merchant

    def deactivate(self, shop_domain: str,
                   session: Optional[Session] = None) -> bool:
        """停用商户（应用卸载）。

        Returns:
            是否找到并停用了商户。
        """
        merchant = self.update_settings(
            shop_domain, session=session, is_active=False
        )
        return merchant is not None

    def delete_with_records(self, shop_domain: str,
                            session: Optional[Session] = None
                            ) -> Optional[Dict[str, int]]:
        """删除商户及其全部抽奖资格与计费记录。

        Returns:
            删除数量字典（entries / transactions），商户不存在返回 None。
        """
        def _do(sess):
            merchant = self.get_by_shop(shop_domain, session=sess)
            if merchant is None:
                return None
            counts = {
                "entries": sess.query(func.count(Entry.id)).filter(
                    Entry.merchant_id == merchant.id
                ).scalar(),
                "transactions": sess.query(
                    func.count(Transaction.id)
                ).filter(
                    Transaction.merchant_id == merchant.id
                ).scalar(),
            }
            sess.delete(merchant)
            sess.flush()
            return counts

        if session:
            return _do(session)

        with self._get_session() as sess:
            counts = _do(sess)
            sess.commit()
            return counts

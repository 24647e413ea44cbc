"""通用 CRUD 基类。

为各仓库提供会话获取、按ID查询、条件查询、按ID更新等通用能力，
不包含任何业务逻辑。所有方法都支持传入外部会话，以便多个仓库
在同一个数据库事务中协作。
"""
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .connection import DatabaseConnection

ModelT = TypeVar("ModelT")


class BaseCRUD:
    """通用 CRUD 基类。

    Attributes:
        conn: 数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    def _get_session(self) -> Session:
        """获取新的数据库会话。"""
        return self.conn.get_session()

    def _insert(self, model: Type[ModelT]):
        """构造支持 ON CONFLICT 子句的方言 INSERT 语句。

        Raises:
            NotImplementedError: 数据库方言不支持冲突处理。
        """
        dialect = self.conn.dialect_name
        if dialect == "sqlite":
            return sqlite_insert(model)
        if dialect == "postgresql":
            return postgresql_insert(model)
        raise NotImplementedError(
            f"Conditional insert is not supported for dialect: {dialect}"
        )

    def get_by_id(self, model: Type[ModelT], record_id: int,
                  session: Optional[Session] = None) -> Optional[ModelT]:
        """按主键查询。

        Args:
            model: ORM 模型类。
            record_id: 主键ID。
            session: 外部会话（可选）。

        Returns:
            模型对象，不存在返回 None。
        """
        if session:
            return session.get(model, record_id)

        with self._get_session() as sess:
            return sess.get(model, record_id)

    def get_all(self, model: Type[ModelT],
                filters: Optional[Dict[str, Any]] = None,
                session: Optional[Session] = None) -> List[ModelT]:
        """按等值条件查询全部记录。

        Args:
            model: ORM 模型类。
            filters: 字段名到值的映射（可选）。
            session: 外部会话（可选）。

        Returns:
            模型对象列表。
        """
        def _query(sess):
            query = sess.query(model)
            if filters:
                query = query.filter_by(**filters)
            return query.all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def update_by_id(self, model: Type[ModelT], record_id: int,
                     session: Optional[Session] = None,
                     **values: Any) -> Optional[ModelT]:
        """按主键更新字段。

        Args:
            model: ORM 模型类。
            record_id: 主键ID。
            session: 外部会话（可选，传入时由调用方提交）。
            **values: 需要更新的字段。

        Returns:
            更新后的模型对象，不存在返回 None。
        """
        def _do(sess):
            record = sess.get(model, record_id)
            if record is None:
                return None
            for key, value in values.items():
                setattr(record, key, value)
            sess.flush()
            return record

        if session:
            return _do(session)

        with self._get_session() as sess:
            record = _do(sess)
            sess.commit()
            return record

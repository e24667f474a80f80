"""通用 CRUD 基类。

为各仓库提供与具体表无关的增删改查能力。所有方法都支持传入外部会话，
以便在同一事务中组合多个操作；未传入时自动创建并提交独立会话。
"""
from typing import Optional, List, Dict, Any, Type

from sqlalchemy.orm import Session

from .connection import DatabaseConnection
from .models import Base


class BaseCRUD:
    """通用 CRUD 基类。

    Attributes:
        conn: 数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    def _get_session(self) -> Session:
        return self.conn.get_session()

    def get_all(self, model: Type[Base],
                filters: Optional[Dict[str, Any]] = None,
                order_by: Optional[str] = None,
                descending: bool = False,
                session: Optional[Session] = None) -> List[Base]:
        """获取满足等值过滤条件的全部记录。

        Args:
            model: ORM 模型类。
            filters: 字段名 → 值 的等值过滤条件（可选）。
            order_by: 排序字段名（可选）。
            descending: 是否倒序。

        Returns:
            ORM 对象列表。
        """
        def _query(sess):
            query = sess.query(model)
            if filters:
                query = query.filter_by(**filters)
            if order_by:
                column = getattr(model, order_by)
                query = query.order_by(column.desc() if descending else column)
            return query.all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def create(self, model: Type[Base], session: Optional[Session] = None,
               **fields: Any) -> Base:
        """创建记录并返回刷新后的 ORM 对象。"""
        def _do(sess):
            record = model(**fields)
            sess.add(record)
            sess.flush()
            sess.refresh(record)
            return record

        if session:
            return _do(session)

        with self._get_session() as sess:
            record = _do(sess)
            sess.commit()
            return record

    def update_by_id(self, model: Type[Base], record_id: Any,
                     session: Optional[Session] = None,
                     **fields: Any) -> Optional[Base]:
        """按主键更新记录。

        Returns:
            更新后的 ORM 对象，记录不存在返回 None。
        """
        def _do(sess):
            record = sess.get(model, record_id)
            if record is None:
                return None
            for key, value in fields.items():
                setattr(record, key, value)
            sess.flush()
            sess.refresh(record)
            return record

        if session:
            return _do(session)

        with self._get_session() as sess:
            record = _do(sess)
            sess.commit()
            return record

    def delete_by_id(self, model: Type[Base], record_id: Any,
                     session: Optional[Session] = None) -> bool:
        """按主键删除记录。

        Returns:
            是否删除成功（记录不存在返回 False）。
        """
        def _do(sess):
            record = sess.get(model, record_id)
            if record is None:
                return False
            sess.delete(record)
            sess.flush()
            return True

        if session:
            return _do(session)

        with self._get_session() as sess:
            deleted = _do(sess)
            sess.commit()
            return deleted

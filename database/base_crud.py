"""通用 CRUD 基类。

所有仓库继承 BaseCRUD，获得按模型类通用的增删改查能力。
每个方法都接受可选的外部会话 ``session``：
- 传入时在该会话内执行，由调用方负责提交；
- 不传时自动开启新会话并在方法内提交。
"""
from typing import Optional, List, Dict, Any, Type

from sqlalchemy.orm import Session

from .connection import DatabaseConnection


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

    def get_by_id(self, model: Type, record_id: int,
                  session: Optional[Session] = None) -> Optional[Any]:
        """按主键查询单条记录。

        Args:
            model: ORM 模型类。
            record_id: 主键。
            session: 外部会话（可选）。

        Returns:
            ORM 对象，不存在时返回 None。
        """
        def _query(sess):
            return sess.query(model).filter(model.id == record_id).first()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def get_all(self, model: Type,
                filters: Optional[Dict[str, Any]] = None,
                limit: Optional[int] = None,
                session: Optional[Session] = None) -> List[Any]:
        """按等值条件查询记录列表。

        Args:
            model: ORM 模型类。
            filters: 字段名 -> 值 的等值过滤条件（可选）。
            limit: 最大返回条数（可选）。
            session: 外部会话（可选）。

        Returns:
            ORM 对象列表，按主键升序。
        """
        def _query(sess):
            query = sess.query(model)
            for field, value in (filters or {}).items():
                query = query.filter(getattr(model, field) == value)
            query = query.order_by(model.id)
            if limit:
                query = query.limit(limit)
            return query.all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

    def create(self, model: Type, session: Optional[Session] = None,
               **fields: Any) -> Any:
        """创建一条记录。

        Args:
            model: ORM 模型类。
            session: 外部会话（可选）。
            **fields: 字段值。

        Returns:
            新创建的 ORM 对象。
        """
        def _do(sess):
            obj = model(**fields)
            sess.add(obj)
            sess.flush()
            sess.refresh(obj)
            return obj

        if session:
            return _do(session)

        with self._get_session() as sess:
            obj = _do(sess)
            sess.commit()
            sess.refresh(obj)
            sess.expunge(obj)
            return obj

    def update_by_id(self, model: Type, record_id: int,
                     session: Optional[Session] = None,
                     **fields: Any) -> Optional[Any]:
        """按主键更新记录。

        Args:
            model: ORM 模型类。
            record_id: 主键。
            session: 外部会话（可选）。
            **fields: 需要更新的字段值。

        Returns:
            更新后的 ORM 对象，记录不存在时返回 None。
        """
        def _do(sess):
            obj = sess.query(model).filter(model.id == record_id).first()
            if obj is None:
                return None
            for field, value in fields.items():
                setattr(obj, field, value)
            sess.flush()
            sess.refresh(obj)
            return obj

        if session:
            return _do(session)

        with self._get_session() as sess:
            obj = _do(sess)
            if obj is None:
                return None
            sess.commit()
            sess.refresh(obj)
            sess.expunge(obj)
            return obj

    def delete_by_id(self, model: Type, record_id: int,
                     session: Optional[Session] = None) -> bool:
        """按主键删除记录。

        Returns:
            是否删除成功。
        """
        def _do(sess):
            obj = sess.query(model).filter(model.id == record_id).first()
            if obj is None:
                return False
            sess.delete(obj)
            sess.flush()
            return True

        if session:
            return _do(session)

        with self._get_session() as sess:
            deleted = _do(sess)
            if deleted:
                sess.commit()
            return deleted

    def count(self, model: Type,
              filters: Optional[Dict[str, Any]] = None,
              session: Optional[Session] = None) -> int:
        """统计记录数。"""
        def _query(sess):
            query = sess.query(model)
            for field, value in (filters or {}).items():
                query = query.filter(getattr(model, field) == value)
            return query.count()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)

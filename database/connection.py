"""数据库引擎与会话。

洞察分类在线程池中并发读取数据，这里统一提供同步引擎：
- SQLite 文件库会自动创建所在目录，并允许跨线程使用连接
- SQLite 内存库使用 StaticPool，所有线程共享同一个连接（否则每个线程各自得到一个空库）
- 其他数据库（如 PostgreSQL）开启 pool_pre_ping，避免拿到断开的连接

表结构定义见 models.py，本模块不包含业务逻辑。
"""
import os
from typing import Optional, Any
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .models import Base
from config.settings import settings


class DatabaseConnection:
    """引擎与会话工厂的持有者。

    Attributes:
        database_url: 数据库连接URL。
        engine: SQLAlchemy 同步引擎。
        SessionLocal: 会话工厂。

    Example:
        ```python
        conn = DatabaseConnection("sqlite:///data/store.db")
        conn.create_tables()
        with conn.get_session() as session:
            ...
        ```
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        """
        Args:
            database_url: 数据库连接URL，为None时取 settings.database_url。
        """
        self.database_url: str = database_url or settings.database_url

        if self.database_url.startswith("sqlite"):
            db_file = make_url(self.database_url).database
            engine_kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if not db_file or db_file == ":memory:":
                engine_kwargs["poolclass"] = StaticPool
            else:
                os.makedirs(os.path.dirname(os.path.abspath(db_file)), exist_ok=True)
            self.engine = create_engine(self.database_url, echo=False, **engine_kwargs)
        else:
            self.engine = create_engine(
                self.database_url, echo=False, pool_pre_ping=True
            )
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False
        )

    def create_tables(self) -> None:
        """按 models.py 建表，已存在的表保持不变。"""
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """新建一个会话，调用方负责关闭（推荐 with 语句）。"""
        return self.SessionLocal()

    def execute_raw_sql(self, sql: str, params: Optional[dict] = None) -> Any:
        """执行一条原始 SQL 并提交。

        Args:
            sql: SQL语句，参数使用 ``:name`` 占位。
            params: 参数字典（可选）。

        Returns:
            查询语句返回全部结果行，其他语句返回空列表。
        """
        with self.get_session() as session:
            result = session.execute(text(sql), params or {})
            rows = result.fetchall() if result.returns_rows else []
            session.commit()
            return rows

    def close(self) -> None:
        """释放连接池。"""
        if self.engine is not None:
            self.engine.dispose()

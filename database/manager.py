"""数据库管理器 —— 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，组合了所有子仓库，
提供三套 API：

1. **子仓库访问**（细粒度）：
   通过 ``db.services``、``db.staff``、``db.customers``、``db.visits``
   直接访问子仓库，返回 ORM 对象。

2. **便捷方法**（粗粒度）：
   ``seed_catalog()``、``add_visit()`` 等扁平化方法，返回字典/基本类型。

3. **洞察存储**：
   ``db.visit_store`` / ``db.catalog_store`` 实现洞察引擎的只读协议。
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from sqlalchemy.orm import Session
from loguru import logger

from .connection import DatabaseConnection
from .entity_repos import ServiceRepository, StaffRepository, CustomerRepository
from .business_repos import VisitRepository
from .stores import SqlVisitStore, SqlCatalogStore


class DatabaseManager:
    """数据库管理器 —— 统一门面。

    Attributes:
        conn: 数据库连接管理器。
        services: 服务目录仓库。
        staff: 员工仓库。
        customers: 顾客仓库。
        visits: 服务记录仓库。
        visit_store: VisitStore 协议实现。
        catalog_store: CatalogStore 协议实现。

    Example::

        db = DatabaseManager("sqlite:///data/store.db")
        db.create_tables()
        db.seed_catalog(business_config.get_service_types())

        db.add_visit({"service_name": "Haircut", "customer_name": "Ana"})
        engine = InsightEngine(db.visit_store, db.catalog_store)
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
        """
        # 基础设施层
        self.conn = DatabaseConnection(database_url)

        # 实体仓库
        self.services = ServiceRepository(self.conn)
        self.staff = StaffRepository(self.conn)
        self.customers = CustomerRepository(self.conn)

        # 业务记录仓库
        self.visits = VisitRepository(
            self.conn, self.staff, self.customers, self.services
        )

        # 洞察存储
        self.visit_store = SqlVisitStore(self.visits)
        self.catalog_store = SqlCatalogStore(self.services, self.staff)

    # ================================================================
    # 基础设施方法
    # ================================================================

    def create_tables(self) -> None:
        """创建所有数据库表（幂等操作）。"""
        self.conn.create_tables()

    def get_session(self) -> Session:
        """获取数据库会话。"""
        return self.conn.get_session()

    @property
    def database_url(self) -> str:
        """数据库连接URL。"""
        return self.conn.database_url

    @property
    def engine(self):
        """SQLAlchemy 引擎对象。"""
        return self.conn.engine

    def execute_raw_sql(self, sql: str,
                        params: Optional[dict] = None) -> Any:
        """执行原始 SQL 语句。"""
        return self.conn.execute_raw_sql(sql, params)

    def close(self) -> None:
        """关闭数据库连接，释放所有资源。"""
        self.conn.close()

    # ================================================================
    # 服务目录
    # ================================================================

    def seed_catalog(self, service_types: List[Dict[str, Any]]) -> int:
        """按配置写入服务目录（已存在的服务保持不变）。

        Args:
            service_types: ``{"name", "price", "duration"}`` 字典列表。

        Returns:
            处理的服务数量。
        """
        with self.get_session() as session:
            for st in service_types:
                self.services.get_or_create(
                    st["name"],
                    price=st.get("price", 0.0),
                    duration=st.get("duration", 30),
                    session=session
                )
            session.commit()
        logger.info(f"服务目录初始化完成: {len(service_types)} 项")
        return len(service_types)

    def seed_staff(self, names: List[str]) -> int:
        """按配置写入员工（已存在的员工保持不变）。"""
        with self.get_session() as session:
            for name in names:
                self.staff.get_or_create(name, session=session)
            session.commit()
        logger.info(f"员工初始化完成: {len(names)} 人")
        return len(names)

    def get_catalog(self, active_only: bool = False) -> List[Dict[str, Any]]:
        """获取服务目录（字典形式）。"""
        return [
            {
                "id": entry.service_id,
                "name": entry.service_name,
                "price": entry.price,
                "duration": entry.duration,
                "is_active": entry.is_active,
            }
            for entry in self.catalog_store.list_services(active_only=active_only)
        ]

    # ================================================================
    # 服务记录
    # ================================================================

    def add_visit(self, visit_data: Dict[str, Any]) -> int:
        """登记一条服务记录，字段说明见 VisitRepository.save。"""
        return self.visits.save(visit_data)

    def start_visit(self, visit_id: int,
                    when: Optional[datetime] = None) -> bool:
        """开始服务。"""
        return self.visits.start(visit_id, when) is not None

    def complete_visit(self, visit_id: int,
                       when: Optional[datetime] = None) -> bool:
        """完成服务。"""
        return self.visits.complete(visit_id, when) is not None

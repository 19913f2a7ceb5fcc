"""数据持久化 - SQLAlchemy 模型、仓库和洞察数据源适配

核心组件：
- DatabaseManager: 统一入口，组合各仓库
- DatabaseConnection: 引擎与会话工厂
- SqlVisitStore / SqlCatalogStore: 供洞察引擎读取的存储适配
"""
from database.connection import DatabaseConnection
from database.manager import DatabaseManager
from database.stores import SqlCatalogStore, SqlVisitStore

__all__ = [
    "DatabaseManager",
    "DatabaseConnection",
    "SqlVisitStore",
    "SqlCatalogStore",
]

"""店铺经营洞察 - 基于服务记录和服务目录生成可操作的洞察

洞察分类（共 7 个）：
- customer-behavior: 流失风险、爽约预测、升级销售
- revenue-optimization: 服务收入、现金流、员工收入、定价建议
- staff-performance: 员工效率、满意度、回头率
- recommendations: 社媒时间、服务套餐、个性化优惠、排班
- repeat-visits: 沉睡顾客、召回活动
- slot-optimization: 冷门时段、服务组合、时段爽约风险
- customer-personalization: 到店预测、服务推荐

数据流：
    VisitStore / CatalogStore ──→ ProjectionBuilder ──→ 各分类模块 ──→ InsightEngine

使用示例：
    ```python
    from database import DatabaseManager
    from insights import InsightEngine

    db = DatabaseManager("sqlite:///data/store.db")
    engine = InsightEngine(db.visit_store, db.catalog_store)
    insights = await engine.get_top_insights(limit=10)
    ```
"""
from insights.base import (
    CategoryResult, FixedPriority, Insight, InsightCategory, InsightPriority,
    WeightedPriority, classify_priority
)
from insights.cache import InsightCache
from insights.engine import InsightEngine
from insights.errors import DataUnavailableError, InsightError, InvalidCategoryError
from insights.projections import ProjectionBuilder
from insights.stores import (
    CatalogEntry, CatalogStore, StaffEntry, VisitQuery, VisitRecord, VisitStore
)

__all__ = [
    # 核心
    "InsightEngine",
    "InsightCache",
    "ProjectionBuilder",
    # 洞察类型
    "Insight",
    "InsightCategory",
    "InsightPriority",
    "FixedPriority",
    "WeightedPriority",
    "CategoryResult",
    "classify_priority",
    # 存储接口
    "VisitStore",
    "CatalogStore",
    "VisitRecord",
    "VisitQuery",
    "CatalogEntry",
    "StaffEntry",
    # 异常
    "InsightError",
    "DataUnavailableError",
    "InvalidCategoryError",
]

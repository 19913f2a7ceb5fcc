"""洞察引擎 - 并发汇总 7 个分类的洞察

每个分类在独立线程中计算，互不影响：
- 单个分类抛出异常时记为空列表并记录日志
- 超过整体截止时间仍未完成的分类同样记为空列表

使用方式：
    ```python
    engine = InsightEngine(db.visit_store, db.catalog_store)
    top = await engine.get_top_insights(limit=5)
    ```
"""
import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Union

from loguru import logger

from config.settings import settings
from . import (
    customer_behavior, personalization, recommendations, repeat_visits,
    revenue, slot_optimization, staff_performance
)
from .analytics import ServiceAnalyticsReport, get_service_analytics
from .base import (
    CategoryResult, Insight, InsightCategory, InsightPriority, sort_by_priority
)
from .cache import InsightCache
from .errors import InvalidCategoryError
from .projections import ProjectionBuilder
from .stores import CatalogStore, VisitStore

Generator = Callable[[ProjectionBuilder], List[Insight]]
PriorityFilter = Optional[Union[int, str, InsightPriority]]

DEFAULT_GENERATORS: Dict[InsightCategory, Generator] = {
    InsightCategory.CUSTOMER_BEHAVIOR: customer_behavior.get_customer_behavior_insights,
    InsightCategory.REVENUE_OPTIMIZATION: revenue.get_revenue_optimization_insights,
    InsightCategory.STAFF_PERFORMANCE: staff_performance.get_staff_performance_insights,
    InsightCategory.RECOMMENDATIONS: recommendations.get_recommendation_insights,
    InsightCategory.REPEAT_VISITS: repeat_visits.get_repeat_visit_insights,
    InsightCategory.SLOT_OPTIMIZATION: slot_optimization.get_slot_optimization_insights,
    InsightCategory.CUSTOMER_PERSONALIZATION:
        personalization.get_customer_personalization_insights,
}


def filter_by_priority(insights: List[Insight], priority: PriorityFilter) -> List[Insight]:
    if priority is None:
        return insights
    wanted = InsightPriority.parse(priority)
    return [i for i in insights if i.priority == wanted]


class InsightEngine:
    """洞察引擎

    Args:
        visit_store: 服务记录存储。
        catalog_store: 服务目录存储。
        now: 返回当前时间的函数，测试中可固定。
        cache: 服务分析使用的缓存，不传时新建一个。
        deadline: 整体截止秒数，不传时取 settings.insights_deadline_seconds。
        generators: 分类 -> 生成函数，用于替换个别分类（测试注入故障等）。
    """

    def __init__(self, visit_store: VisitStore, catalog_store: CatalogStore,
                 now: Optional[Callable[[], datetime]] = None,
                 cache: Optional[InsightCache] = None,
                 deadline: Optional[float] = None,
                 generators: Optional[Mapping[InsightCategory, Generator]] = None) -> None:
        self.builder = ProjectionBuilder(visit_store, catalog_store, now=now)
        self.cache = cache or InsightCache()
        self.deadline = settings.insights_deadline_seconds if deadline is None else deadline
        self.generators: Dict[InsightCategory, Generator] = dict(DEFAULT_GENERATORS)
        if generators:
            self.generators.update(generators)

    # ================================================================
    # 分类执行
    # ================================================================

    def _run_category(self, category: InsightCategory) -> CategoryResult:
        """同步执行单个分类，异常转换为 CategoryResult.error。"""
        try:
            insights = self.generators[category](self.builder)
        except Exception as e:
            logger.exception(f"洞察分类 {category.value} 计算失败: {e}")
            return CategoryResult(category=category, error=e)
        return CategoryResult(category=category, insights=sort_by_priority(insights))

    async def run_categories(self, categories: Optional[List[InsightCategory]] = None
                             ) -> List[CategoryResult]:
        """并发执行多个分类，按分类顺序返回结果。"""
        categories = categories or list(InsightCategory)
        tasks = {
            category: asyncio.ensure_future(asyncio.to_thread(self._run_category, category))
            for category in categories
        }
        _, pending = await asyncio.wait(tasks.values(), timeout=self.deadline)

        results = []
        for category, task in tasks.items():
            if task in pending:
                task.cancel()
                logger.warning(f"洞察分类 {category.value} 超过 {self.deadline}s 未完成，按空结果处理")
                results.append(CategoryResult(
                    category=category,
                    error=asyncio.TimeoutError(f"{category.value} timed out"),
                ))
            else:
                results.append(task.result())
        return results

    # ================================================================
    # 对外接口
    # ================================================================

    async def get_all_insights(self, priority: PriorityFilter = None
                               ) -> Dict[InsightCategory, List[Insight]]:
        """所有分类的洞察，每个分类都有键，分类内按优先级排序。"""
        results = await self.run_categories()
        all_insights = {
            r.category: filter_by_priority(r.insights, priority) for r in results
        }
        failed = [r.category.value for r in results if not r.ok]
        total = sum(len(v) for v in all_insights.values())
        if failed:
            logger.warning(f"以下洞察分类未能生成: {', '.join(failed)}")
        logger.info(f"Generated {total} total insights across all categories")
        return all_insights

    async def get_top_insights(self, limit: int = 10,
                               priority: PriorityFilter = None) -> List[Insight]:
        """跨分类按优先级排序后的前 limit 条。

        先按优先级过滤再截取；limit 不大于 0 时返回全部。
        """
        all_insights = await self.get_all_insights()
        flat: List[Insight] = []
        for insights in all_insights.values():
            flat.extend(insights)
        top = sort_by_priority(filter_by_priority(flat, priority))
        if limit > 0:
            top = top[:limit]
        return top

    async def get_insights_by_category(self, category: Union[str, InsightCategory],
                                       priority: PriorityFilter = None,
                                       limit: Optional[int] = None) -> List[Insight]:
        """单个分类的洞察。

        Args:
            category: 分类名（如 "customer-behavior"）或枚举。
            priority: 只保留该优先级（整数、枚举或名称，如 "high"）。
            limit: 大于 0 时截取前 limit 条。

        Raises:
            InvalidCategoryError: 分类名无效。
        """
        try:
            category = InsightCategory(category)
        except ValueError:
            raise InvalidCategoryError(str(category), InsightCategory.values())

        result = (await self.run_categories([category]))[0]
        insights = filter_by_priority(result.insights, priority)
        if limit is not None and limit > 0:
            insights = insights[:limit]
        return insights

    def get_customer_insights(self, customer_id: int) -> personalization.PersonalizedInsights:
        """单个顾客的个性化洞察（同步）。"""
        return personalization.get_customer_personalized_insights(self.builder, customer_id)

    def get_service_analytics(self, period_days: int = 30) -> ServiceAnalyticsReport:
        """带缓存的服务分析看板数据。"""
        return get_service_analytics(self.builder, self.cache, period_days)

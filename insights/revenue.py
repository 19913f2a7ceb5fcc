"""营收优化洞察：服务营收、现金流趋势、员工营收、定价建议。"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from loguru import logger

from config.business_config import business_config
from .base import (
    FixedPriority, Insight, InsightCategory, InsightPriority,
    format_money, round_half_up, sort_by_priority
)
from .projections import (
    WEEKDAY_NAMES, ProjectionBuilder, ServiceTrend, StaffPerformance
)
from .stores import VisitQuery

CASH_FLOW_DAYS = 365


@dataclass
class CashFlowTrends:
    """已完成服务的营收分桶（按完成时间）。"""
    daily: List[Dict[str, object]] = field(default_factory=list)
    weekly: List[Dict[str, object]] = field(default_factory=list)
    monthly: List[Dict[str, object]] = field(default_factory=list)
    day_of_week: Dict[str, float] = field(default_factory=dict)
    hour_of_day: Dict[str, float] = field(default_factory=dict)


@dataclass
class PricingSuggestion:
    service_id: int
    service_name: str
    current_price: float
    suggested_price: int
    reason: str
    confidence: int


def revenue_per_hour(trend: ServiceTrend) -> float:
    hours = trend.completed_bookings * trend.duration / 60
    return trend.total_revenue / hours if hours > 0 else 0.0


# ================================================================
# 服务营收
# ================================================================

def analyze_service_revenue(builder: ProjectionBuilder):
    """分析 30 天服务趋势：下滑服务、营收最高服务、每小时营收最高服务。

    Returns:
        (洞察列表, ServiceTrend 列表)
    """
    trends = builder.build_service_trends(30)
    insights = []

    declining = [
        t for t in trends if t.growth_rate < -20 and t.bookings_this_period >= 3
    ]
    if declining:
        top = declining[0]
        insights.append(Insight(
            id="declining-services",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Declining Services",
            description=f"{len(declining)} services showing negative growth",
            emoji="📉",
            priority=FixedPriority(InsightPriority.HIGH),
            value=f"{top.service_name}: {round_half_up(top.growth_rate)}%",
            actionable=True,
            action_label="Review Services",
            action_url="/analytics",
            metadata={"declining_count": len(declining)},
        ))

    earning = [t for t in trends if t.total_revenue > 0]
    if earning:
        top = earning[0]
        insights.append(Insight(
            id="top-revenue-service",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Top Revenue Service",
            description=f"{top.service_name} generates the most revenue",
            emoji="⭐",
            priority=FixedPriority(InsightPriority.INFO),
            value=format_money(round_half_up(top.total_revenue)),
            actionable=True,
            action_label="View Details",
            action_url="/analytics",
            metadata={"service_name": top.service_name},
        ))

    per_hour = [(t, revenue_per_hour(t)) for t in trends]
    per_hour = sorted([p for p in per_hour if p[1] > 0], key=lambda p: -p[1])
    if per_hour:
        best, rate = per_hour[0]
        insights.append(Insight(
            id="revenue-per-hour",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Best Revenue/Hour",
            description=f"{best.service_name} generates highest revenue per hour",
            emoji="⚡",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{format_money(round_half_up(rate))}/hr",
            actionable=False,
            metadata={"service_name": best.service_name},
        ))

    return insights, trends


# ================================================================
# 现金流
# ================================================================

def week_start(moment: datetime) -> datetime:
    """所在周的周日（周起始日）。"""
    # weekday(): 周一=0 ... 周日=6
    offset = (moment.weekday() + 1) % 7
    return (moment - timedelta(days=offset)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )


def _sorted_series(totals: Dict[str, float], key_name: str) -> List[Dict[str, object]]:
    return [{key_name: k, "revenue": v} for k, v in sorted(totals.items())]


def build_cash_flow(builder: ProjectionBuilder) -> CashFlowTrends:
    """按完成时间对已完成服务的营收分桶。

    只统计状态为 done 且有完成时间的记录；缺少完成时间的 done 记录不计入现金流。
    """
    now = builder.now()
    visits = builder.visits.query_visits(VisitQuery(
        created_from=now - timedelta(days=CASH_FLOW_DAYS),
        completed_only=True,
    ))
    prices = builder.price_index()
    thirty_days_ago = now - timedelta(days=30)

    daily: Dict[str, float] = {}
    weekly: Dict[str, float] = {}
    monthly: Dict[str, float] = {}
    day_of_week: Dict[str, float] = {}
    hour_of_day: Dict[str, float] = {}

    for visit in visits:
        if visit.completed_at is None:
            continue
        done_at = visit.completed_at
        revenue = prices.price_of(visit.service_name)

        if done_at >= thirty_days_ago:
            day_key = done_at.date().isoformat()
            daily[day_key] = daily.get(day_key, 0.0) + revenue

        week_key = week_start(done_at).date().isoformat()
        weekly[week_key] = weekly.get(week_key, 0.0) + revenue

        month_key = f"{done_at.year}-{done_at.month:02d}"
        monthly[month_key] = monthly.get(month_key, 0.0) + revenue

        weekday = WEEKDAY_NAMES[done_at.weekday()]
        day_of_week[weekday] = day_of_week.get(weekday, 0.0) + revenue

        hour_key = f"{done_at.hour}:00"
        hour_of_day[hour_key] = hour_of_day.get(hour_key, 0.0) + revenue

    return CashFlowTrends(
        daily=_sorted_series(daily, "date"),
        weekly=_sorted_series(weekly, "week")[-12:],
        monthly=_sorted_series(monthly, "month"),
        day_of_week=dict(day_of_week),
        hour_of_day=dict(hour_of_day),
    )


def week_over_week_change(this_week: float, last_week: float) -> float:
    """周环比（%），上周为 0 时返回 0。"""
    return (this_week - last_week) / last_week * 100 if last_week > 0 else 0.0


def analyze_cash_flow_trends(builder: ProjectionBuilder):
    """现金流趋势洞察：周环比涨跌超过 20%、营收最高的星期。

    Returns:
        (洞察列表, CashFlowTrends)
    """
    trends = build_cash_flow(builder)
    insights = []

    if len(trends.weekly) >= 2:
        this_week = trends.weekly[-1]["revenue"]
        last_week = trends.weekly[-2]["revenue"]
        change = week_over_week_change(this_week, last_week)
        metadata = {"change": change, "this_week": this_week, "last_week": last_week}

        if change > 20:
            insights.append(Insight(
                id="revenue-up-week",
                category=InsightCategory.REVENUE_OPTIMIZATION,
                title="Revenue Up This Week",
                description=f"Revenue increased {round_half_up(change)}% compared to last week",
                emoji="📈",
                priority=FixedPriority(InsightPriority.INFO),
                value=f"+{round_half_up(change)}%",
                actionable=False,
                metadata=metadata,
            ))
        elif change < -20 and this_week > 0:
            insights.append(Insight(
                id="revenue-down-week",
                category=InsightCategory.REVENUE_OPTIMIZATION,
                title="Revenue Down This Week",
                description=f"Revenue decreased {round_half_up(abs(change))}% compared to last week",
                emoji="📉",
                priority=FixedPriority(InsightPriority.HIGH),
                value=f"-{round_half_up(abs(change))}%",
                actionable=True,
                action_label="Review Trends",
                action_url="/analytics",
                metadata=metadata,
            ))

    if trends.day_of_week:
        # 同额时保留先出现的星期
        best_day, best_revenue = sorted(
            trends.day_of_week.items(), key=lambda item: -item[1]
        )[0]
        insights.append(Insight(
            id="best-day",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Best Revenue Day",
            description=f"{best_day} generates the most revenue",
            emoji="📅",
            priority=FixedPriority(InsightPriority.INFO),
            value=format_money(round_half_up(best_revenue)),
            actionable=False,
            metadata={"day": best_day},
        ))

    return insights, trends


# ================================================================
# 员工营收
# ================================================================

def find_underperformers(performance: List[StaffPerformance]) -> List[StaffPerformance]:
    """营收低于团队均值 70% 且完成服务 >=5 的员工。"""
    if not performance:
        return []
    average = sum(p.total_revenue for p in performance) / len(performance)
    return [
        p for p in performance
        if p.total_revenue < average * 0.7 and p.completed_services >= 5
    ]


def analyze_staff_revenue(builder: ProjectionBuilder):
    """员工营收洞察。

    Returns:
        (洞察列表, StaffPerformance 列表)
    """
    performance = builder.build_staff_performance(30)
    insights: List[Insight] = []
    if not performance:
        return insights, performance

    top = performance[0]
    if top.total_revenue > 0:
        insights.append(Insight(
            id="top-staff-revenue",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Top Revenue Generator",
            description=f"{top.staff_name} generates the most revenue",
            emoji="⭐",
            priority=FixedPriority(InsightPriority.INFO),
            value=format_money(round_half_up(top.total_revenue)),
            actionable=True,
            action_label="View Staff",
            action_url="/staff",
            metadata={"staff_id": top.staff_id},
        ))

    working = [p for p in performance if p.completed_services > 0]
    if working:
        efficient = sorted(
            working, key=lambda p: -(p.total_revenue / p.completed_services)
        )[0]
        efficiency = efficient.total_revenue / efficient.completed_services
        insights.append(Insight(
            id="most-efficient-staff",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Most Efficient Staff",
            description=f"{efficient.staff_name} has highest revenue per service",
            emoji="⚡",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{format_money(round_half_up(efficiency))}/service",
            actionable=False,
            metadata={"staff_id": efficient.staff_id},
        ))

    underperformers = find_underperformers(performance)
    if underperformers:
        insights.append(Insight(
            id="underperforming-staff",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Staff Training Opportunity",
            description=f"{len(underperformers)} staff members below average revenue",
            emoji="📚",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{len(underperformers)} staff",
            actionable=True,
            action_label="Review Staff",
            action_url="/staff",
            metadata={"count": len(underperformers)},
        ))

    return insights, performance


# ================================================================
# 定价建议
# ================================================================

def suggest_prices(trend: ServiceTrend,
                   benchmark: Optional[float] = None) -> List[PricingSuggestion]:
    """对单个服务应用三条互不排斥的定价规则。

    1. 增长 >30%、本期 >=10 单、单价 <50：涨价至 min(价×1.15, 价+10)，置信度 70
    2. 增长 <-30%、本期 >=5 单：降价至 max(价×0.9, 价-5)，置信度 60
    3. 每小时营收 < 基准×0.8 且完成 >=5 单：涨价至 价×1.1，置信度 50
    """
    if benchmark is None:
        benchmark = business_config.get_revenue_per_hour_benchmark()
    price = trend.price
    suggestions = []

    def _add(suggested: float, reason: str, confidence: int) -> None:
        suggestions.append(PricingSuggestion(
            service_id=trend.service_id,
            service_name=trend.service_name,
            current_price=price,
            suggested_price=round_half_up(suggested),
            reason=reason,
            confidence=confidence,
        ))

    if trend.growth_rate > 30 and trend.bookings_this_period >= 10 and price < 50:
        _add(min(price * 1.15, price + 10),
             "High demand, low price - opportunity to increase", 70)

    if trend.growth_rate < -30 and trend.bookings_this_period >= 5:
        _add(max(price * 0.9, price - 5),
             "Declining demand - consider promotional pricing", 60)

    if revenue_per_hour(trend) < benchmark * 0.8 and trend.completed_bookings >= 5:
        _add(price * 1.1, "Low revenue per hour - increase price to optimize", 50)

    return suggestions


def generate_pricing_suggestions(builder: ProjectionBuilder):
    """基于 60 天趋势的定价建议。

    Returns:
        (洞察列表, PricingSuggestion 列表)
    """
    trends = builder.build_service_trends(60)
    suggestions: List[PricingSuggestion] = []
    for trend in trends:
        suggestions.extend(suggest_prices(trend))

    insights = []
    high_confidence = [s for s in suggestions if s.confidence >= 60]
    if high_confidence:
        insights.append(Insight(
            id="pricing-suggestions",
            category=InsightCategory.REVENUE_OPTIMIZATION,
            title="Pricing Optimization",
            description=f"{len(high_confidence)} services have pricing opportunities",
            emoji="💵",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{len(high_confidence)} suggestions",
            actionable=True,
            action_label="View Suggestions",
            action_url="/services",
            metadata={"count": len(high_confidence)},
        ))
    return insights, suggestions


def get_revenue_optimization_insights(builder: ProjectionBuilder) -> List[Insight]:
    """营收优化分类的全部洞察，按优先级排序。"""
    service, _ = analyze_service_revenue(builder)
    cash_flow, _ = analyze_cash_flow_trends(builder)
    staff, _ = analyze_staff_revenue(builder)
    pricing, _ = generate_pricing_suggestions(builder)
    insights = sort_by_priority(service + cash_flow + staff + pricing)
    logger.debug(f"revenue-optimization: {len(insights)} insights")
    return insights

"""时段优化洞察：冷门时段、服务组合、时段爽约风险。

时段以 (星期, 小时) 为键，取 90 天窗口。
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger

from .base import (
    FixedPriority, Insight, InsightCategory, InsightPriority,
    format_money, round_half_up, sort_by_priority
)
from .projections import (
    WEEKDAY_NAMES, ProjectionBuilder, bucket_by_slot, days_between
)
from .stores import STATUS_DONE, PriceIndex, VisitQuery, VisitRecord

WINDOW_DAYS = 90
BUNDLE_WINDOW_DAYS = 7

Slot = Tuple[str, int]


@dataclass
class SlowHour:
    day: str
    hour: int
    average_bookings: int
    suggested_discount: int
    potential_impact: str


@dataclass
class ServiceCombination:
    services: List[str]
    frequency: int
    average_time_between: float
    bundle_price: int
    savings: float
    confidence: int


@dataclass
class SlotRisk:
    day: str
    hour: int
    no_show_risk: int
    factors: List[str] = field(default_factory=list)
    recommendation: str = "Monitor closely"


def _window_visits(builder: ProjectionBuilder, **filters) -> List[VisitRecord]:
    return builder.visits.query_visits(VisitQuery(
        created_from=builder.now() - timedelta(days=WINDOW_DAYS), **filters
    ))


# ================================================================
# 冷门时段
# ================================================================

def slot_counts(visits: List[VisitRecord]) -> Dict[Slot, int]:
    """统计各时段的预约数，并补齐营业时段内没有预约的空时段。

    营业时段取观察到的最早到最晚小时，七天都补齐，空时段计为 0。
    """
    observed = {slot: len(bucket) for slot, bucket in bucket_by_slot(visits).items()}
    if not observed:
        return {}
    hours = [hour for _, hour in observed]
    counts: Dict[Slot, int] = {}
    for day in WEEKDAY_NAMES:
        for hour in range(min(hours), max(hours) + 1):
            counts[(day, hour)] = observed.get((day, hour), 0)
    return counts


def suggested_discount(bookings: int) -> int:
    if bookings == 0:
        return 25
    if bookings == 1:
        return 15
    return 10


def find_slow_slots(counts: Dict[Slot, int],
                    mean: Optional[float] = None) -> List[SlowHour]:
    """找出冷门时段：预约数 < 2 且低于均值的一半。

    Args:
        counts: 时段 -> 预约数（可包含 0）。
        mean: 时段均值；不传时按有预约的时段计算。

    Returns:
        按预约数升序的 SlowHour 列表。
    """
    if mean is None:
        observed = [c for c in counts.values() if c > 0]
        mean = sum(observed) / len(observed) if observed else 0.0

    slow = []
    for (day, hour), count in counts.items():
        if count < mean * 0.5 and count < 2:
            slow.append(SlowHour(
                day=day,
                hour=hour,
                average_bookings=count,
                suggested_discount=suggested_discount(count),
                potential_impact=(
                    "Very slow - high discount recommended" if count == 0
                    else "Slow - moderate discount recommended"
                ),
            ))
    slow.sort(key=lambda s: s.average_bookings)
    return slow


def identify_slow_hours(builder: ProjectionBuilder):
    """冷门时段洞察。

    Returns:
        (洞察列表, 前 10 个 SlowHour)
    """
    slow = find_slow_slots(slot_counts(_window_visits(builder)))
    insights = []
    if slow:
        slowest = slow[0]
        insights.append(Insight(
            id="slow-hours",
            category=InsightCategory.SLOT_OPTIMIZATION,
            title="Slow Hours Identified",
            description=f"{len(slow)} time slots are consistently slow",
            emoji="⏰",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{slowest.day} {slowest.hour}:00",
            actionable=True,
            action_label="View Slots",
            action_url="/analytics",
            metadata={
                "count": len(slow),
                "slowest_day": slowest.day,
                "slowest_hour": slowest.hour,
            },
        ))
    return insights, slow[:10]


# ================================================================
# 服务组合
# ================================================================

def mine_combinations(visits: List[VisitRecord],
                      prices: PriceIndex) -> List[ServiceCombination]:
    """挖掘同一顾客 7 天内先后完成的两种不同服务。

    组合键为排序后的服务名；出现 >=3 次成为候选，
    套餐价为原价合计的 85%（四舍五入），置信度 = min(100, 次数×20)。

    Returns:
        按出现次数降序的 ServiceCombination 列表。
    """
    per_customer: Dict[int, List[Tuple[datetime, str]]] = {}
    for visit in visits:
        if visit.customer_id is None or visit.completed_at is None:
            continue
        per_customer.setdefault(visit.customer_id, []).append(
            (visit.completed_at, visit.service_name)
        )

    pairs: Dict[Tuple[str, str], List[float]] = {}
    for history in per_customer.values():
        history.sort(key=lambda item: item[0])
        for i in range(len(history)):
            for j in range(i + 1, len(history)):
                gap = days_between(history[j][0], history[i][0])
                if gap > BUNDLE_WINDOW_DAYS:
                    break
                first, second = history[i][1], history[j][1]
                if first == second:
                    continue
                key = tuple(sorted([first, second]))
                pairs.setdefault(key, []).append(gap)

    combos = []
    for key, gaps in pairs.items():
        if len(gaps) < 3:
            continue
        entries = [prices.lookup(name) for name in key]
        if any(e is None for e in entries):
            continue
        individual = sum(e.price for e in entries)
        bundle_price = round_half_up(individual * 0.85)
        combos.append(ServiceCombination(
            services=list(key),
            frequency=len(gaps),
            average_time_between=round_half_up(sum(gaps) / len(gaps), 1),
            bundle_price=bundle_price,
            savings=individual - bundle_price,
            confidence=min(100, len(gaps) * 20),
        ))
    combos.sort(key=lambda c: -c.frequency)
    return combos


def analyze_service_combinations(builder: ProjectionBuilder):
    """服务组合洞察。

    Returns:
        (洞察列表, 前 10 个 ServiceCombination)
    """
    visits = _window_visits(builder, statuses=[STATUS_DONE], has_customer=True)
    combos = mine_combinations(visits, builder.price_index())
    insights = []
    if combos:
        top = combos[0]
        insights.append(Insight(
            id="service-combinations",
            category=InsightCategory.SLOT_OPTIMIZATION,
            title="Service Bundle Opportunity",
            description=f"{' + '.join(top.services)} frequently booked together",
            emoji="📦",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{format_money(top.savings)} savings",
            actionable=True,
            action_label="Create Bundle",
            action_url="/services",
            metadata={"services": top.services, "frequency": top.frequency},
        ))
    return insights, combos[:10]


# ================================================================
# 时段爽约风险
# ================================================================

def score_slot_risk(day: str, hour: int,
                    visits: List[VisitRecord]) -> Optional[SlotRisk]:
    """单个时段的爽约风险，样本不足 5 条时不评估。"""
    total = len(visits)
    if total < 5:
        return None
    completed = sum(1 for v in visits if v.is_done)
    incomplete = sum(1 for v in visits if v.is_incomplete)

    risk = 0.0
    factors = []
    incomplete_rate = incomplete / total
    if incomplete_rate > 0.2:
        risk += incomplete_rate * 50
        factors.append(f"{round_half_up(incomplete_rate * 100)}% incomplete rate")

    completion_rate = completed / total
    if completion_rate < 0.7:
        risk += (1 - completion_rate) * 30
        factors.append(f"Low completion rate ({round_half_up(completion_rate * 100)}%)")

    if risk <= 0:
        return None
    if risk >= 50:
        recommendation = "Send confirmation reminders"
    elif risk >= 30:
        recommendation = "Consider confirmation calls"
    else:
        recommendation = "Monitor closely"
    return SlotRisk(
        day=day,
        hour=hour,
        no_show_risk=min(100, round_half_up(risk)),
        factors=factors,
        recommendation=recommendation,
    )


def predict_slot_no_show_risk(builder: ProjectionBuilder):
    """时段爽约风险洞察（风险 >=40 的时段）。

    Returns:
        (洞察列表, 前 10 个 SlotRisk)
    """
    risks = []
    for (day, hour), bucket in bucket_by_slot(_window_visits(builder)).items():
        risk = score_slot_risk(day, hour, bucket)
        if risk:
            risks.append(risk)
    risks.sort(key=lambda r: -r.no_show_risk)

    insights = []
    high = [r for r in risks if r.no_show_risk >= 40]
    if high:
        insights.append(Insight(
            id="slot-no-show-risk",
            category=InsightCategory.SLOT_OPTIMIZATION,
            title="High No-Show Risk Slots",
            description=f"{len(high)} time slots have high no-show risk",
            emoji="🚫",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{len(high)} slots",
            actionable=True,
            action_label="Review Slots",
            action_url="/analytics",
            metadata={"count": len(high)},
        ))
    return insights, risks[:10]


def get_slot_optimization_insights(builder: ProjectionBuilder) -> List[Insight]:
    """时段优化分类的全部洞察，按优先级排序。"""
    slow, _ = identify_slow_hours(builder)
    combos, _ = analyze_service_combinations(builder)
    risks, _ = predict_slot_no_show_risk(builder)
    insights = sort_by_priority(slow + combos + risks)
    logger.debug(f"slot-optimization: {len(insights)} insights")
    return insights

"""员工绩效洞察：产能、满意度代理指标、回头客。

满意度没有直接数据，以回头率、客单价、完成率作为代理指标。
"""
from dataclasses import dataclass
from typing import List

from loguru import logger

from .base import (
    FixedPriority, Insight, InsightCategory, InsightPriority,
    format_money, round_half_up, sort_by_priority
)
from .projections import ProjectionBuilder, StaffPerformance


@dataclass
class StaffSatisfaction:
    staff_id: int
    staff_name: str
    rebooking_rate: float
    average_ticket_size: float
    customer_retention: float
    completion_rate: float


@dataclass
class StaffRebooking:
    staff_id: int
    staff_name: str
    rebooking_rate: float
    repeat_customers: int
    total_customers: int


def analyze_productivity(builder: ProjectionBuilder):
    """30 天产能：完成最多、平均用时最短、利用率偏低。

    Returns:
        (洞察列表, StaffPerformance 列表)
    """
    performance = builder.build_staff_performance(30)
    insights: List[Insight] = []
    if not performance:
        return insights, []

    working = sorted(
        [p for p in performance if p.completed_services > 0],
        key=lambda p: -p.completed_services
    )
    if working:
        top = working[0]
        insights.append(Insight(
            id="most-productive-staff",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Most Productive Staff",
            description=f"{top.staff_name} completed the most services",
            emoji="⚡",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{top.completed_services} services",
            actionable=True,
            action_label="View Staff",
            action_url="/staff",
            metadata={"staff_id": top.staff_id},
        ))

    timed = sorted(
        [p for p in performance if p.average_service_duration > 0],
        key=lambda p: p.average_service_duration
    )
    if timed and timed[0].completed_services >= 5:
        fastest = timed[0]
        insights.append(Insight(
            id="fastest-staff",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Fastest Service Time",
            description=f"{fastest.staff_name} has the fastest average service time",
            emoji="⏱️",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{fastest.average_service_duration} min avg",
            actionable=False,
            metadata={"staff_id": fastest.staff_id},
        ))

    average_utilization = sum(p.utilization_rate for p in performance) / len(performance)
    low_utilization = [
        p for p in performance
        if p.utilization_rate < average_utilization * 0.7 and p.completed_services >= 3
    ]
    if low_utilization:
        insights.append(Insight(
            id="low-utilization",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Low Utilization",
            description=f"{len(low_utilization)} staff members have low utilization rates",
            emoji="📊",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{len(low_utilization)} staff",
            actionable=True,
            action_label="Review Staff",
            action_url="/staff",
            metadata={"count": len(low_utilization)},
        ))

    return insights, performance


def to_satisfaction(p: StaffPerformance) -> StaffSatisfaction:
    return StaffSatisfaction(
        staff_id=p.staff_id,
        staff_name=p.staff_name,
        rebooking_rate=p.rebooking_rate,
        average_ticket_size=p.average_ticket_size,
        customer_retention=p.rebooking_rate,
        completion_rate=(
            p.completed_services / p.total_services * 100 if p.total_services else 0.0
        ),
    )


def analyze_customer_satisfaction(builder: ProjectionBuilder):
    """90 天满意度代理指标。

    Returns:
        (洞察列表, StaffSatisfaction 列表)
    """
    satisfaction = [to_satisfaction(p) for p in builder.build_staff_performance(90)]
    insights: List[Insight] = []
    if not satisfaction:
        return insights, []

    loyal = sorted(
        [s for s in satisfaction if s.rebooking_rate > 0],
        key=lambda s: -s.rebooking_rate
    )
    if loyal and loyal[0].rebooking_rate >= 30:
        top = loyal[0]
        insights.append(Insight(
            id="highest-loyalty",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Highest Customer Loyalty",
            description=f"{top.staff_name} has the highest rebooking rate",
            emoji="❤️",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{round_half_up(top.rebooking_rate)}% rebooking",
            actionable=True,
            action_label="View Staff",
            action_url="/staff",
            metadata={"staff_id": top.staff_id},
        ))

    ticketed = sorted(
        [s for s in satisfaction if s.average_ticket_size > 0],
        key=lambda s: -s.average_ticket_size
    )
    if ticketed and ticketed[0].average_ticket_size > 50:
        top = ticketed[0]
        insights.append(Insight(
            id="highest-ticket",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Highest Average Ticket",
            description=f"{top.staff_name} generates the highest ticket sizes",
            emoji="💰",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{format_money(round_half_up(top.average_ticket_size))} avg",
            actionable=False,
            metadata={"staff_id": top.staff_id},
        ))

    low_completion = [s for s in satisfaction if 0 < s.completion_rate < 80]
    if low_completion:
        insights.append(Insight(
            id="low-completion",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Low Completion Rate",
            description=f"{len(low_completion)} staff have completion rates below 80%",
            emoji="⚠️",
            priority=FixedPriority(InsightPriority.HIGH),
            value=f"{len(low_completion)} staff",
            actionable=True,
            action_label="Review Staff",
            action_url="/staff",
            metadata={"count": len(low_completion)},
        ))

    return insights, satisfaction


def analyze_rebooking(builder: ProjectionBuilder):
    """90 天回头客分析（只看服务过 >=5 位顾客的员工）。

    Returns:
        (洞察列表, StaffRebooking 列表)
    """
    rebooking = [
        StaffRebooking(
            staff_id=p.staff_id,
            staff_name=p.staff_name,
            rebooking_rate=p.rebooking_rate,
            repeat_customers=round_half_up(p.unique_customers * p.rebooking_rate / 100),
            total_customers=p.unique_customers,
        )
        for p in builder.build_staff_performance(90)
    ]
    insights: List[Insight] = []
    if not rebooking:
        return insights, []

    eligible = sorted(
        [r for r in rebooking if r.total_customers >= 5],
        key=lambda r: -r.rebooking_rate
    )
    if eligible:
        top = eligible[0]
        insights.append(Insight(
            id="top-rebooking",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Top Rebooking Rate",
            description=f"{top.staff_name} has {top.repeat_customers} repeat customers",
            emoji="🔄",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{round_half_up(top.rebooking_rate)}%",
            actionable=True,
            action_label="View Staff",
            action_url="/staff",
            metadata={"staff_id": top.staff_id},
        ))

    average = sum(r.rebooking_rate for r in rebooking) / len(rebooking)
    low = [
        r for r in rebooking
        if r.rebooking_rate < average * 0.7 and r.total_customers >= 5
    ]
    if low:
        insights.append(Insight(
            id="low-rebooking",
            category=InsightCategory.STAFF_PERFORMANCE,
            title="Low Rebooking Rate",
            description=f"{len(low)} staff have below-average rebooking rates",
            emoji="📉",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{len(low)} staff",
            actionable=True,
            action_label="Review Staff",
            action_url="/staff",
            metadata={"count": len(low)},
        ))

    return insights, rebooking


def get_staff_performance_insights(builder: ProjectionBuilder) -> List[Insight]:
    """员工绩效分类的全部洞察，按优先级排序。"""
    productivity, _ = analyze_productivity(builder)
    satisfaction, _ = analyze_customer_satisfaction(builder)
    rebooking, _ = analyze_rebooking(builder)
    insights = sort_by_priority(productivity + satisfaction + rebooking)
    logger.debug(f"staff-performance: {len(insights)} insights")
    return insights

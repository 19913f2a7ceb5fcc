"""回头客洞察：沉睡顾客分层、只做基础服务的顾客、召回活动。"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger

from .base import (
    FixedPriority, Insight, InsightCategory, InsightPriority,
    format_money, round_half_up, sort_by_priority
)
from .projections import CustomerHistory, ProjectionBuilder, split_by_average_price


@dataclass
class InactiveSegments:
    """互斥的沉睡分层，各层内按沉睡天数降序。"""
    thirty_days: List[CustomerHistory] = field(default_factory=list)
    sixty_days: List[CustomerHistory] = field(default_factory=list)
    ninety_days: List[CustomerHistory] = field(default_factory=list)


@dataclass
class BasicOnlyCustomer:
    customer_id: int
    customer_name: str
    phone: Optional[str]
    current_services: List[str]
    potential_upsell_value: int
    suggested_services: List[str]


@dataclass
class WinBackCampaign:
    segment: str
    customer_count: int
    message: str
    offer: str
    discount: int
    priority: InsightPriority


# 分层 -> (活动名称, 文案, 优惠, 折扣, 优先级)
CAMPAIGN_TIERS = [
    ("ninety_days", "90+ Days Inactive",
     "We miss you! Come back and get 20% off your next visit.",
     "Welcome Back - 20% Off", 20, InsightPriority.HIGH),
    ("sixty_days", "60+ Days Inactive",
     "It's been a while! Enjoy 15% off your next service.",
     "Come Back - 15% Off", 15, InsightPriority.MEDIUM),
    ("thirty_days", "30+ Days Inactive",
     "We'd love to see you again! 10% off your next visit.",
     "Returning Customer - 10% Off", 10, InsightPriority.LOW),
]


def segment_inactive(histories: List[CustomerHistory]) -> InactiveSegments:
    """按距上次到店天数分入 [30,60) / [60,90) / [90,∞) 三层。"""
    segments = InactiveSegments()
    for history in histories:
        days = history.days_since_last_visit
        if not days:
            continue
        if days >= 90:
            segments.ninety_days.append(history)
        elif days >= 60:
            segments.sixty_days.append(history)
        elif days >= 30:
            segments.thirty_days.append(history)

    for group in (segments.thirty_days, segments.sixty_days, segments.ninety_days):
        group.sort(key=lambda h: -(h.days_since_last_visit or 0))
    return segments


def identify_inactive_customers(builder: ProjectionBuilder):
    """沉睡顾客分层洞察。

    Returns:
        (洞察列表, InactiveSegments)
    """
    segments = segment_inactive(builder.build_customer_history(period_days=365))
    insights = []

    if segments.ninety_days:
        count = len(segments.ninety_days)
        insights.append(Insight(
            id="inactive-90-days",
            category=InsightCategory.REPEAT_VISITS,
            title="90+ Days Inactive",
            description=f"{count} customers haven't visited in 90+ days",
            emoji="🚨",
            priority=FixedPriority(InsightPriority.HIGH),
            value=f"{count} customers",
            actionable=True,
            action_label="Win-Back Campaign",
            action_url="/customers?filter=inactive-90",
            metadata={"count": count, "segment": "90-days"},
        ))

    if segments.sixty_days:
        count = len(segments.sixty_days)
        insights.append(Insight(
            id="inactive-60-days",
            category=InsightCategory.REPEAT_VISITS,
            title="60+ Days Inactive",
            description=f"{count} customers haven't visited in 60+ days",
            emoji="⚠️",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{count} customers",
            actionable=True,
            action_label="Re-engage",
            action_url="/customers?filter=inactive-60",
            metadata={"count": count, "segment": "60-days"},
        ))

    if segments.thirty_days:
        count = len(segments.thirty_days)
        insights.append(Insight(
            id="inactive-30-days",
            category=InsightCategory.REPEAT_VISITS,
            title="30+ Days Inactive",
            description=f"{count} customers haven't visited in 30+ days",
            emoji="📉",
            priority=FixedPriority(InsightPriority.LOW),
            value=f"{count} customers",
            actionable=True,
            action_label="View Customers",
            action_url="/customers?filter=inactive-30",
            metadata={"count": count, "segment": "30-days"},
        ))

    return insights, segments


def identify_basic_service_only_customers(builder: ProjectionBuilder):
    """到店 >=3 次且只做过基础服务的顾客，附推荐的高端服务。

    Returns:
        (洞察列表, 按潜在价值降序的 BasicOnlyCustomer 列表)
    """
    histories = builder.build_customer_history(period_days=365)
    services = builder.catalog.list_services(active_only=True)
    basic, premium = split_by_average_price(services)
    prices: Dict[str, float] = {s.service_name: s.price for s in services}

    customers = []
    for history in histories:
        booked = history.services_booked
        if not booked or not all(s in basic for s in booked):
            continue
        untried = [s for s in premium if s not in booked]
        if not untried or history.total_visits < 3:
            continue
        suggested = untried[:3]
        customers.append(BasicOnlyCustomer(
            customer_id=history.customer_id,
            customer_name=history.customer_name,
            phone=history.phone,
            current_services=list(booked),
            potential_upsell_value=round_half_up(
                sum(prices.get(name, 0.0) for name in suggested)
            ),
            suggested_services=suggested,
        ))
    customers.sort(key=lambda c: -c.potential_upsell_value)

    insights = []
    if customers:
        total = sum(c.potential_upsell_value for c in customers)
        insights.append(Insight(
            id="basic-service-upsell",
            category=InsightCategory.REPEAT_VISITS,
            title="Upsell Opportunity",
            description=f"{len(customers)} customers only book basic services",
            emoji="💰",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{format_money(total)} potential",
            actionable=True,
            action_label="View Customers",
            action_url="/customers?filter=basic-only",
            metadata={"count": len(customers), "potential_value": total},
        ))
    return insights, customers


def build_win_back_campaigns(segments: InactiveSegments) -> List[WinBackCampaign]:
    campaigns = []
    for attr, segment, message, offer, discount, priority in CAMPAIGN_TIERS:
        members = getattr(segments, attr)
        if members:
            campaigns.append(WinBackCampaign(
                segment=segment,
                customer_count=len(members),
                message=message,
                offer=offer,
                discount=discount,
                priority=priority,
            ))
    return campaigns


def generate_win_back_campaigns(builder: ProjectionBuilder,
                                segments: Optional[InactiveSegments] = None):
    """召回活动；只有存在 90 天以上沉睡顾客时才产生洞察。

    Returns:
        (洞察列表, WinBackCampaign 列表)
    """
    if segments is None:
        _, segments = identify_inactive_customers(builder)
    campaigns = build_win_back_campaigns(segments)

    insights = []
    urgent = [c for c in campaigns if c.priority == InsightPriority.HIGH]
    if urgent:
        top = urgent[0]
        insights.append(Insight(
            id="win-back-campaign",
            category=InsightCategory.REPEAT_VISITS,
            title="Win-Back Campaign Ready",
            description=f"{top.customer_count} customers in {top.segment} segment",
            emoji="📢",
            priority=FixedPriority(InsightPriority.HIGH),
            value=top.offer,
            actionable=True,
            action_label="Launch Campaign",
            action_url="/customers?filter=win-back",
            metadata={
                "segment": top.segment,
                "customer_count": top.customer_count,
                "offer": top.offer,
            },
        ))
    return insights, campaigns


def get_repeat_visit_insights(builder: ProjectionBuilder) -> List[Insight]:
    """回头客分类的全部洞察，按优先级排序。"""
    inactive, segments = identify_inactive_customers(builder)
    basic_only, _ = identify_basic_service_only_customers(builder)
    campaigns, _ = generate_win_back_campaigns(builder, segments)
    insights = sort_by_priority(inactive + basic_only + campaigns)
    logger.debug(f"repeat-visits: {len(insights)} insights")
    return insights

"""经营建议洞察：社媒发布时间、服务套餐、个性化优惠、排班人数。"""
import math
from dataclasses import dataclass
from datetime import timedelta
from itertools import combinations
from typing import Dict, List, Optional, Set

from loguru import logger

from .base import (
    FixedPriority, Insight, InsightCategory, InsightPriority,
    format_money, round_half_up, sort_by_priority
)
from .projections import ProjectionBuilder, bucket_by_slot, split_by_average_price
from .stores import STATUS_DONE, VisitQuery

# 每名员工每小时可接待的单数
BOOKINGS_PER_STAFF_PER_HOUR = 2


@dataclass
class PostingTime:
    day: str
    hour: int
    engagement_score: int
    reason: str


@dataclass
class ServicePackage:
    name: str
    services: List[str]
    current_revenue: float
    potential_revenue: int
    savings: int
    confidence: int


@dataclass
class PersonalizedOffer:
    customer_id: int
    customer_name: str
    phone: Optional[str]
    offer: str
    discount: int
    reason: str
    confidence: int


@dataclass
class StaffingRecommendation:
    day: str
    hour: int
    current_bookings: int
    recommended_staff: int
    reason: str


def recommend_social_media_timing(builder: ProjectionBuilder):
    """以 90 天预约高峰为参考，建议在高峰前一小时发布。

    Returns:
        (洞察列表, 前 5 个 PostingTime)
    """
    visits = builder.visits.query_visits(VisitQuery(
        created_from=builder.now() - timedelta(days=90)
    ))
    recommendations = []
    for (day, hour), bucket in bucket_by_slot(visits).items():
        count = len(bucket)
        if count >= 3:
            recommendations.append(PostingTime(
                day=day,
                hour=hour - 1 if hour >= 1 else 23,
                engagement_score=count * 10,
                reason=f"Peak booking time at {hour}:00 ({count} bookings)",
            ))
    recommendations.sort(key=lambda r: -r.engagement_score)

    insights = []
    if recommendations:
        top = recommendations[0]
        insights.append(Insight(
            id="social-media-timing",
            category=InsightCategory.RECOMMENDATIONS,
            title="Best Social Media Time",
            description=f"Post on {top.day} at {top.hour}:00 for maximum engagement",
            emoji="📱",
            priority=FixedPriority(InsightPriority.INFO),
            value=f"{top.day} {top.hour}:00",
            actionable=False,
            metadata={"day": top.day, "hour": top.hour},
        ))
    return insights, recommendations[:5]


def recommend_service_packages(builder: ProjectionBuilder):
    """被 >=3 位顾客同时做过的两项服务，建议打包 9 折。

    Returns:
        (洞察列表, 前 5 个 ServicePackage)
    """
    visits = builder.visits.query_visits(VisitQuery(
        created_from=builder.now() - timedelta(days=90),
        statuses=[STATUS_DONE],
        has_customer=True,
    ))
    prices = builder.price_index()

    customer_services: Dict[int, List[str]] = {}
    for visit in visits:
        booked = customer_services.setdefault(visit.customer_id, [])
        if visit.service_name not in booked:
            booked.append(visit.service_name)

    pair_counts: Dict[str, int] = {}
    for booked in customer_services.values():
        for a, b in combinations(booked, 2):
            key = " + ".join(sorted([a, b]))
            pair_counts[key] = pair_counts.get(key, 0) + 1

    packages = []
    for key, count in pair_counts.items():
        if count < 3:
            continue
        names = key.split(" + ")
        entries = [prices.lookup(name) for name in names]
        if any(e is None for e in entries):
            continue
        current = sum(e.price for e in entries)
        discounted = current * 0.9
        packages.append(ServicePackage(
            name=f"{names[0]} + {names[1]} Package",
            services=names,
            current_revenue=current,
            potential_revenue=round_half_up(discounted),
            savings=round_half_up(current - discounted),
            confidence=min(100, count * 15),
        ))
    packages.sort(key=lambda p: -p.confidence)

    insights = []
    if packages:
        top = packages[0]
        insights.append(Insight(
            id="service-packages",
            category=InsightCategory.RECOMMENDATIONS,
            title="Service Package Opportunity",
            description=f"{top.name} is frequently booked together",
            emoji="📦",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{format_money(top.savings)} savings",
            actionable=True,
            action_label="Create Package",
            action_url="/services",
            metadata={"package_name": top.name},
        ))
    return insights, packages[:5]


def generate_personalized_offers(builder: ProjectionBuilder):
    """按顾客状态给出一条优惠（互斥，按顺序匹配）。

    1. 60 天以上未到店：回归 85 折，置信度 80
    2. 只做过基础服务且做过 >=3 种：高端体验 8 折，置信度 60
    3. 到店 >=10 次且平均间隔 <30 天：忠诚回馈 9 折，置信度 70

    Returns:
        (洞察列表, 前 20 个 PersonalizedOffer)
    """
    histories = builder.build_customer_history(period_days=365)
    services = builder.catalog.list_services(active_only=True)
    basic, premium = split_by_average_price(services)
    basic_set: Set[str] = set(basic)

    offers = []
    for history in histories:
        common = dict(
            customer_id=history.customer_id,
            customer_name=history.customer_name,
            phone=history.phone,
        )
        days = history.days_since_last_visit
        if days and days >= 60:
            offers.append(PersonalizedOffer(
                offer="Welcome Back - 15% Off",
                discount=15,
                reason=f"Haven't visited in {days} days",
                confidence=80,
                **common,
            ))
            continue

        only_basic = all(s in basic_set for s in history.services_booked)
        if only_basic and len(history.services_booked) >= 3:
            if premium:
                offers.append(PersonalizedOffer(
                    offer="Try Premium - 20% Off",
                    discount=20,
                    reason="Frequent customer, upgrade opportunity",
                    confidence=60,
                    **common,
                ))
            continue

        gap = history.average_days_between_visits
        if history.total_visits >= 10 and gap and gap < 30:
            offers.append(PersonalizedOffer(
                offer="Loyalty Reward - 10% Off",
                discount=10,
                reason=f"{history.total_visits} visits - loyal customer",
                confidence=70,
                **common,
            ))
    offers.sort(key=lambda o: -o.confidence)

    insights = []
    high_confidence = sum(1 for o in offers if o.confidence >= 60)
    if high_confidence:
        insights.append(Insight(
            id="personalized-offers",
            category=InsightCategory.RECOMMENDATIONS,
            title="Personalized Offers Ready",
            description=f"{high_confidence} customers have personalized offers",
            emoji="🎁",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{high_confidence} offers",
            actionable=True,
            action_label="View Offers",
            action_url="/customers?filter=offers",
            metadata={"count": high_confidence},
        ))
    return insights, offers[:20]


def recommend_staffing_levels(builder: ProjectionBuilder):
    """按 30 天时段单量建议排班人数（每人每小时 2 单，向上取整）。

    Returns:
        (洞察列表, 前 10 个 StaffingRecommendation)
    """
    visits = builder.visits.query_visits(VisitQuery(
        created_from=builder.now() - timedelta(days=30)
    ))
    recommendations = []
    for (day, hour), bucket in bucket_by_slot(visits).items():
        count = len(bucket)
        if count >= 4:
            recommendations.append(StaffingRecommendation(
                day=day,
                hour=hour,
                current_bookings=count,
                recommended_staff=math.ceil(count / BOOKINGS_PER_STAFF_PER_HOUR),
                reason=f"{count} bookings typically at this time",
            ))
    recommendations.sort(key=lambda r: -r.current_bookings)

    insights = []
    if recommendations:
        peak = recommendations[0]
        insights.append(Insight(
            id="staffing-recommendation",
            category=InsightCategory.RECOMMENDATIONS,
            title="Peak Hour Staffing",
            description=(
                f"{peak.day} {peak.hour}:00 typically needs "
                f"{peak.recommended_staff} staff"
            ),
            emoji="👥",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{peak.recommended_staff} staff",
            actionable=True,
            action_label="View Schedule",
            action_url="/staff",
            metadata={"day": peak.day, "hour": peak.hour},
        ))
    return insights, recommendations[:10]


def get_recommendation_insights(builder: ProjectionBuilder) -> List[Insight]:
    """经营建议分类的全部洞察，按优先级排序。"""
    social, _ = recommend_social_media_timing(builder)
    packages, _ = recommend_service_packages(builder)
    offers, _ = generate_personalized_offers(builder)
    staffing, _ = recommend_staffing_levels(builder)
    insights = sort_by_priority(social + packages + offers + staffing)
    logger.debug(f"recommendations: {len(insights)} insights")
    return insights

"""顾客个性化洞察：到店历史、服务推荐、下次到店预测。

单个顾客的接口供顾客详情页使用；分类汇总只输出"近期该到店"的顾客数。
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from urllib.parse import quote

from loguru import logger

from config.settings import settings
from .base import (
    FixedPriority, Insight, InsightCategory, InsightPriority,
    round_half_up, sort_by_priority
)
from .projections import (
    SECONDS_PER_DAY, CustomerHistory, ProjectionBuilder, split_by_average_price
)
from .stores import VisitQuery

# 下次到店预测前后 7 天内才提醒
DUE_WINDOW_DAYS = 7
# 到店间隔的假定波动比例（没有实际计算方差）
ASSUMED_VARIANCE_RATIO = 0.3


@dataclass
class VisitDetail:
    date: datetime
    service: str
    price: float
    staff_name: Optional[str]
    status: str


@dataclass
class VisitHistory:
    history: Optional[CustomerHistory]
    visit_details: List[VisitDetail] = field(default_factory=list)


@dataclass
class ServiceRecommendation:
    service_name: str
    reason: str
    confidence: int
    price: float


@dataclass
class NextServiceDue:
    predicted_date: Optional[datetime]
    confidence: int
    reason: str


@dataclass
class PersonalizedInsights:
    insights: List[Insight]
    visit_history: Optional[CustomerHistory]
    service_recommendations: List[ServiceRecommendation]
    next_service_due: NextServiceDue


def _single_history(builder: ProjectionBuilder, customer_id: int) -> Optional[CustomerHistory]:
    histories = builder.build_customer_history(customer_id=customer_id, period_days=365)
    return histories[0] if histories else None


def days_until(target: datetime, now: datetime) -> int:
    """距目标日期的天数，向上取整（已过期为负数或 0）。"""
    return math.ceil((target - now).total_seconds() / SECONDS_PER_DAY)


def get_customer_visit_history(builder: ProjectionBuilder, customer_id: int) -> VisitHistory:
    """顾客到店历史及逐次明细（最新在前）。"""
    history = _single_history(builder, customer_id)
    if history is None:
        return VisitHistory(history=None)

    visits = builder.visits.query_visits(VisitQuery(
        customer_id=customer_id,
        newest_first=True,
        limit=settings.customer_history_limit,
    ))
    prices = builder.price_index()
    details = [
        VisitDetail(
            date=v.created_at,
            service=v.service_name,
            price=prices.price_of(v.service_name),
            staff_name=v.staff_name,
            status=v.status,
        )
        for v in visits
    ]
    return VisitHistory(history=history, visit_details=details)


# ================================================================
# 服务推荐
# ================================================================

def recommend_for_history(history: CustomerHistory,
                          services) -> List[ServiceRecommendation]:
    """三路推荐合并：高端升级、常做服务的搭配、价位相近的服务。

    同一服务只保留置信度最高的一条，按置信度降序取前 5。
    """
    _, premium_names = split_by_average_price(services)
    booked = set(history.services_booked)
    recommendations: List[ServiceRecommendation] = []

    untried_premium = [
        s for s in services if s.service_name in premium_names and s.service_name not in booked
    ]
    for service in untried_premium[:2]:
        confidence = 40
        if history.total_spent > 200:
            confidence += 20
        if history.total_visits >= 5:
            confidence += 20
        gap = history.average_days_between_visits
        if gap and gap < 30:
            confidence += 20
        recommendations.append(ServiceRecommendation(
            service_name=service.service_name,
            reason="Upgrade opportunity - you've been loyal, try premium",
            confidence=min(100, confidence),
            price=service.price,
        ))

    favorite_names = history.favorite_service_names
    if favorite_names:
        favorite = favorite_names[0]
        favorite_entry = next((s for s in services if s.service_name == favorite), None)
        if favorite_entry is not None:
            complements = [
                s for s in services
                if s.service_name != favorite
                and s.service_name not in booked
                and s.price <= favorite_entry.price * 1.5
            ]
            for service in complements[:2]:
                recommendations.append(ServiceRecommendation(
                    service_name=service.service_name,
                    reason=f"Complements your favorite: {favorite}",
                    confidence=50,
                    price=service.price,
                ))

    similar = [
        s for s in services
        if s.service_name not in booked
        and abs(s.price - history.average_ticket_size) < 20
    ]
    for service in similar[:2]:
        recommendations.append(ServiceRecommendation(
            service_name=service.service_name,
            reason="Similar to your usual services",
            confidence=45,
            price=service.price,
        ))

    best: Dict[str, ServiceRecommendation] = {}
    for rec in recommendations:
        current = best.get(rec.service_name)
        if current is None or rec.confidence > current.confidence:
            best[rec.service_name] = rec
    merged = sorted(best.values(), key=lambda r: -r.confidence)
    return merged[:5]


def recommend_services_for_customer(builder: ProjectionBuilder,
                                    customer_id: int) -> List[ServiceRecommendation]:
    history = _single_history(builder, customer_id)
    if history is None:
        return []
    return recommend_for_history(
        history, builder.catalog.list_services(active_only=True)
    )


# ================================================================
# 下次到店预测
# ================================================================

def predict_next_due(history: Optional[CustomerHistory]) -> NextServiceDue:
    """按平均到店间隔预测下次到店日期。

    置信度基础 50：到店 >=10 次加 20，>=20 次再加 10；
    假定波动（间隔×0.3）小于 10 天时再加 20。
    """
    if history is None or not history.average_days_between_visits:
        return NextServiceDue(None, 0, "Not enough visit history")
    if history.last_visit_date is None:
        return NextServiceDue(None, 0, "No previous visits")

    interval = round_half_up(history.average_days_between_visits)
    predicted = history.last_visit_date + timedelta(days=interval)

    confidence = 50
    if history.total_visits >= 10:
        confidence += 20
    if history.total_visits >= 20:
        confidence += 10
    if history.average_days_between_visits * ASSUMED_VARIANCE_RATIO < 10:
        confidence += 20

    reason = f"Based on your average visit frequency (every {interval} days)"
    if confidence >= 70:
        reason += " - High confidence prediction"
    elif confidence >= 50:
        reason += " - Moderate confidence"
    else:
        reason += " - Low confidence, more data needed"

    return NextServiceDue(predicted, min(100, confidence), reason)


def predict_next_service_due(builder: ProjectionBuilder, customer_id: int) -> NextServiceDue:
    return predict_next_due(_single_history(builder, customer_id))


def get_customer_personalized_insights(builder: ProjectionBuilder,
                                       customer_id: int) -> PersonalizedInsights:
    """单个顾客的个性化洞察。

    - 预测到店日期在前后 7 天内且置信度 >=50：提醒到店（已到期为 HIGH）
    - 首条推荐置信度 >=60：推荐服务（INFO）
    """
    visit_history = get_customer_visit_history(builder, customer_id)
    history = visit_history.history
    recommendations = (
        recommend_for_history(history, builder.catalog.list_services(active_only=True))
        if history else []
    )
    next_due = predict_next_due(history)
    insights = []

    if next_due.predicted_date is not None and next_due.confidence >= 50:
        remaining = days_until(next_due.predicted_date, builder.now())
        if -DUE_WINDOW_DAYS <= remaining <= DUE_WINDOW_DAYS:
            if remaining < 0:
                value = "Overdue"
            elif remaining == 0:
                value = "Today"
            else:
                value = f"{remaining} days"
            insights.append(Insight(
                id=f"next-service-due-{customer_id}",
                category=InsightCategory.CUSTOMER_PERSONALIZATION,
                title="Time for Your Next Visit",
                description=next_due.reason,
                emoji="📅",
                priority=FixedPriority(
                    InsightPriority.HIGH if remaining <= 0 else InsightPriority.MEDIUM
                ),
                value=value,
                actionable=True,
                action_label="Book Now",
                action_url=f"/add?customer={customer_id}",
                metadata={
                    "predicted_date": next_due.predicted_date,
                    "confidence": next_due.confidence,
                },
            ))

    if recommendations and recommendations[0].confidence >= 60:
        top = recommendations[0]
        insights.append(Insight(
            id=f"service-recommendation-{customer_id}",
            category=InsightCategory.CUSTOMER_PERSONALIZATION,
            title="Recommended Service",
            description=top.reason,
            emoji="✨",
            priority=FixedPriority(InsightPriority.INFO),
            value=top.service_name,
            actionable=True,
            action_label="Book Service",
            action_url=f"/add?customer={customer_id}&service={quote(top.service_name, safe='')}",
            metadata={"service_name": top.service_name, "confidence": top.confidence},
        ))

    return PersonalizedInsights(
        insights=sort_by_priority(insights),
        visit_history=history,
        service_recommendations=recommendations,
        next_service_due=next_due,
    )


def get_customer_personalization_insights(builder: ProjectionBuilder) -> List[Insight]:
    """分类汇总：预测到店日期在前后 7 天内的顾客数。"""
    now = builder.now()
    due = []
    for history in builder.build_customer_history(period_days=365):
        prediction = predict_next_due(history)
        if prediction.predicted_date is None:
            continue
        if -DUE_WINDOW_DAYS <= days_until(prediction.predicted_date, now) <= DUE_WINDOW_DAYS:
            due.append(history)

    insights = []
    if due:
        insights.append(Insight(
            id="customers-due-for-visit",
            category=InsightCategory.CUSTOMER_PERSONALIZATION,
            title="Customers Due for Visit",
            description=f"{len(due)} customers are due for their next visit",
            emoji="📅",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{len(due)} customers",
            actionable=True,
            action_label="View Customers",
            action_url="/customers?filter=due-for-visit",
            metadata={"count": len(due)},
        ))
    logger.debug(f"customer-personalization: {len(insights)} insights")
    return insights

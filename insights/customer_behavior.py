"""顾客行为洞察：流失风险、爽约预测、升单机会。

全部为规则打分，无模型训练；输入为 365 天的顾客历史。
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from loguru import logger

from config.business_config import business_config
from .base import (
    FixedPriority, Insight, InsightCategory, InsightPriority,
    format_money, round_half_up, sort_by_priority
)
from .projections import CustomerHistory, ProjectionBuilder, split_by_average_price
from .stores import VisitRecord

HISTORY_DAYS = 365

RISK_HIGH = "high"
RISK_MEDIUM = "medium"
RISK_LOW = "low"


@dataclass
class ChurnRiskCustomer:
    customer_id: int
    customer_name: str
    phone: Optional[str]
    days_since_last_visit: int
    risk_level: str
    risk_score: int
    last_visit_date: Optional[datetime]
    total_visits: int
    total_spent: float


@dataclass
class NoShowRisk:
    customer_id: int
    customer_name: str
    phone: Optional[str]
    no_show_probability: int
    risk_factors: List[str] = field(default_factory=list)


@dataclass
class UpsellOpportunity:
    customer_id: int
    customer_name: str
    phone: Optional[str]
    current_services: List[str]
    suggested_services: List[str]
    potential_revenue: int
    confidence: int


# ================================================================
# 流失风险
# ================================================================

def score_churn_risk(history: CustomerHistory) -> Optional[ChurnRiskCustomer]:
    """对单个顾客计算流失风险。

    距上次到店 >=90 天为 high，60-89 为 medium，30-59 为 low，
    不足 30 天（或无到店记录）不产生信号，返回 None。
    超过平均到店间隔 1.5 倍时加 10 分并把 low 升为 medium；
    累计消费超过 500 再加 5 分。
    """
    days = history.days_since_last_visit
    if not days or days < 30:
        return None

    if days >= 90:
        level = RISK_HIGH
        score = min(100.0, 70 + (days - 90) / 2)
    elif days >= 60:
        level = RISK_MEDIUM
        score = 40 + (days - 60) / 30 * 30
    else:
        level = RISK_LOW
        score = 20 + (days - 30) / 30 * 20

    if history.average_days_between_visits:
        if days > history.average_days_between_visits * 1.5:
            score += 10
            if level == RISK_LOW:
                level = RISK_MEDIUM

    if history.total_spent > 500:
        score += 5

    return ChurnRiskCustomer(
        customer_id=history.customer_id,
        customer_name=history.customer_name,
        phone=history.phone,
        days_since_last_visit=days,
        risk_level=level,
        risk_score=min(100, round_half_up(score)),
        last_visit_date=history.last_visit_date,
        total_visits=history.total_visits,
        total_spent=history.total_spent,
    )


def churn_insights(at_risk: List[ChurnRiskCustomer]) -> List[Insight]:
    insights = []
    high_count = sum(1 for c in at_risk if c.risk_level == RISK_HIGH)
    medium_count = sum(1 for c in at_risk if c.risk_level == RISK_MEDIUM)

    if high_count > 0:
        insights.append(Insight(
            id="churn-high-risk",
            category=InsightCategory.CUSTOMER_BEHAVIOR,
            title="High Churn Risk Customers",
            description=f"{high_count} customers haven't visited in 90+ days",
            emoji="⚠️",
            priority=FixedPriority(InsightPriority.HIGH),
            value=f"{high_count} customers",
            actionable=True,
            action_label="View Customers",
            action_url="/customers?filter=churn-risk",
            metadata={"risk_level": RISK_HIGH, "count": high_count},
        ))

    if medium_count > 0:
        insights.append(Insight(
            id="churn-medium-risk",
            category=InsightCategory.CUSTOMER_BEHAVIOR,
            title="Medium Churn Risk",
            description=f"{medium_count} customers haven't visited in 60-90 days",
            emoji="📉",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{medium_count} customers",
            actionable=True,
            action_label="View Customers",
            action_url="/customers?filter=churn-risk",
            metadata={"risk_level": RISK_MEDIUM, "count": medium_count},
        ))
    return insights


def detect_churn_risk(builder: ProjectionBuilder):
    """检测流失风险顾客。

    Returns:
        (洞察列表, 按风险分降序的 ChurnRiskCustomer 列表)
    """
    histories = builder.build_customer_history(period_days=HISTORY_DAYS)
    at_risk = [r for r in (score_churn_risk(h) for h in histories) if r and r.risk_score > 0]
    at_risk.sort(key=lambda c: -c.risk_score)
    return churn_insights(at_risk), at_risk


# ================================================================
# 爽约预测
# ================================================================

def score_no_show(history: CustomerHistory, visits: List[VisitRecord],
                  basic_services: List[str]) -> Optional[NoShowRisk]:
    """按五个加性因子计算单个顾客的爽约概率（0-100）。"""
    if not visits:
        return None

    probability = 0.0
    factors: List[str] = []

    incomplete = sum(1 for v in visits if v.is_incomplete)
    if incomplete > 0:
        probability += incomplete / len(visits) * 40
        factors.append(f"{incomplete} incomplete visit(s)")

    if history.average_days_between_visits and history.average_days_between_visits > 60:
        probability += 20
        factors.append("Low visit frequency")

    if history.total_visits <= 2:
        probability += 15
        factors.append("New customer")

    if history.days_since_last_visit and history.days_since_last_visit > 30:
        probability += 10
        factors.append(f"{history.days_since_last_visit} days since last visit")

    booked = history.services_booked
    if booked and all(s in basic_services for s in booked):
        probability += 5
        factors.append("Only basic services")

    if probability <= 0:
        return None
    return NoShowRisk(
        customer_id=history.customer_id,
        customer_name=history.customer_name,
        phone=history.phone,
        no_show_probability=min(100, round_half_up(probability)),
        risk_factors=factors,
    )


def predict_no_shows(builder: ProjectionBuilder):
    """预测爽约概率。

    Returns:
        (洞察列表, 按概率降序的 NoShowRisk 列表)
    """
    visits = builder.customer_visits(period_days=HISTORY_DAYS)
    histories = builder.histories_from_visits(visits)

    by_customer: Dict[int, List[VisitRecord]] = defaultdict(list)
    for visit in visits:
        by_customer[visit.customer_id].append(visit)

    basic_services = business_config.get_basic_services()
    risks = []
    for history in histories:
        risk = score_no_show(history, by_customer.get(history.customer_id, []), basic_services)
        if risk:
            risks.append(risk)
    risks.sort(key=lambda r: -r.no_show_probability)

    insights = []
    high_count = sum(1 for r in risks if r.no_show_probability >= 50)
    if high_count > 0:
        insights.append(Insight(
            id="no-show-high-risk",
            category=InsightCategory.CUSTOMER_BEHAVIOR,
            title="High No-Show Risk",
            description=f"{high_count} customers have high no-show probability",
            emoji="🚫",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{high_count} customers",
            actionable=True,
            action_label="Review Customers",
            action_url="/customers?filter=no-show-risk",
            metadata={"high_risk_count": high_count},
        ))
    return insights, risks


# ================================================================
# 升单机会
# ================================================================

def score_upsell(history: CustomerHistory, basic: List[str], premium: List[str],
                 prices: Dict[str, float]) -> Optional[UpsellOpportunity]:
    """只做过基础服务、且有未尝试高端服务的顾客才是候选。

    置信度基础 30：消费 >200 加 20，到店 >=5 次加 20，
    平均间隔 <30 天加 20，消费 >500 再加 10；低于 40 的丢弃。
    """
    booked = history.services_booked
    if not booked or not all(s in basic for s in booked):
        return None

    untried = [s for s in premium if s not in booked]
    if not untried:
        return None

    suggested = untried[:3]
    potential = sum(prices.get(name, 0.0) for name in suggested)

    confidence = 30
    if history.total_spent > 200:
        confidence += 20
    if history.total_visits >= 5:
        confidence += 20
    if history.average_days_between_visits and history.average_days_between_visits < 30:
        confidence += 20
    if history.total_spent > 500:
        confidence += 10

    if confidence < 40:
        return None
    return UpsellOpportunity(
        customer_id=history.customer_id,
        customer_name=history.customer_name,
        phone=history.phone,
        current_services=list(booked),
        suggested_services=suggested,
        potential_revenue=round_half_up(potential),
        confidence=min(100, confidence),
    )


def detect_upsell_opportunities(builder: ProjectionBuilder):
    """检测升单机会。

    Returns:
        (洞察列表, 按潜在营收降序的 UpsellOpportunity 列表)
    """
    histories = builder.build_customer_history(period_days=HISTORY_DAYS)
    services = builder.catalog.list_services(active_only=True)
    basic, premium = split_by_average_price(services)
    prices = {s.service_name: s.price for s in services}

    opportunities = [
        o for o in (score_upsell(h, basic, premium, prices) for h in histories) if o
    ]
    opportunities.sort(key=lambda o: -o.potential_revenue)

    insights = []
    high_confidence = sum(1 for o in opportunities if o.confidence >= 60)
    total_potential = sum(o.potential_revenue for o in opportunities)
    if high_confidence > 0:
        insights.append(Insight(
            id="upsell-opportunities",
            category=InsightCategory.CUSTOMER_BEHAVIOR,
            title="Upsell Opportunities",
            description=f"{high_confidence} customers ready for premium services",
            emoji="💰",
            priority=FixedPriority(InsightPriority.MEDIUM),
            value=f"{format_money(total_potential)} potential",
            actionable=True,
            action_label="View Opportunities",
            action_url="/customers?filter=upsell",
            metadata={"count": high_confidence, "potential_revenue": total_potential},
        ))
    return insights, opportunities


def get_customer_behavior_insights(builder: ProjectionBuilder) -> List[Insight]:
    """顾客行为分类的全部洞察，按优先级排序。"""
    churn, _ = detect_churn_risk(builder)
    no_show, _ = predict_no_shows(builder)
    upsell, _ = detect_upsell_opportunities(builder)
    insights = sort_by_priority(churn + no_show + upsell)
    logger.debug(f"customer-behavior: {len(insights)} insights")
    return insights

"""服务分析看板数据：逐项服务的预约、收入、月度趋势和热门时段。

结果可以交给 InsightCache 缓存，键包含统计天数。
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger

from .base import round_half_up
from .cache import InsightCache
from .projections import ProjectionBuilder, slot_of
from .stores import (
    STATUS_DONE, STATUS_IN_PROGRESS, STATUS_WAITING,
    CatalogEntry, VisitQuery, VisitRecord
)

# 计算热门星期/小时时只看最近的若干条
RECENT_SAMPLE_SIZE = 100


@dataclass
class ServiceAnalytics:
    service_id: int
    service_name: str
    service_price: float
    service_duration: int
    total_bookings: int
    completed_bookings: int
    active_bookings: int
    total_revenue: float
    average_revenue_per_booking: float
    bookings_this_month: int
    bookings_last_month: int
    growth_rate: float
    popularity_score: int
    status_label: str
    last_booked_at: Optional[datetime] = None
    most_popular_day: Optional[str] = None
    most_popular_hour: Optional[str] = None


@dataclass
class OverallStats:
    total_revenue: float
    total_bookings: int
    total_services: int
    active_services: int
    average_ticket: float


@dataclass
class ServiceAnalyticsReport:
    period: int
    start_date: datetime
    end_date: datetime
    overall_stats: OverallStats
    services: List[ServiceAnalytics] = field(default_factory=list)


def month_bounds(now: datetime):
    """本月起点、上月起点（上月终点即本月起点）。"""
    this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month = (this_month - timedelta(days=1)).replace(day=1)
    return this_month, last_month


def status_label(bookings_this_month: int, total_revenue: float,
                 growth: float) -> str:
    if bookings_this_month > 20:
        return "🔥 Trending"
    if total_revenue > 1000:
        return "⭐ Top Performer"
    if growth < -20:
        return "⚠️ Declining"
    return "💤 Inactive"


def analyze_service(service: CatalogEntry, visits: List[VisitRecord],
                    start: datetime, now: datetime) -> ServiceAnalytics:
    """单项服务的统计。

    Args:
        service: 服务目录条目。
        visits: 该服务名下的服务记录（可含统计窗口之外的上月数据）。
        start: 统计窗口起点。
        now: 当前时间。
    """
    this_month, last_month = month_bounds(now)
    in_period = [v for v in visits if v.created_at >= start]
    completed = [v for v in in_period if v.status == STATUS_DONE]
    active = [v for v in in_period if v.status in (STATUS_WAITING, STATUS_IN_PROGRESS)]

    this_count = sum(
        1 for v in visits if v.status == STATUS_DONE and v.created_at >= this_month
    )
    last_count = sum(
        1 for v in visits
        if v.status == STATUS_DONE and last_month <= v.created_at < this_month
    )
    total_revenue = len(completed) * service.price
    growth = (this_count - last_count) / last_count * 100 if last_count > 0 else 0.0
    popularity = min(
        100.0,
        this_count * 0.4 + total_revenue / 100 * 0.3 + growth * 0.2 + 50 * 0.1,
    )

    recent = sorted(in_period, key=lambda v: v.created_at, reverse=True)[:RECENT_SAMPLE_SIZE]
    days = Counter(slot_of(v.created_at)[0] for v in recent)
    hours = Counter(slot_of(v.created_at)[1] for v in recent)

    return ServiceAnalytics(
        service_id=service.service_id,
        service_name=service.service_name,
        service_price=service.price,
        service_duration=service.duration,
        total_bookings=len(in_period),
        completed_bookings=len(completed),
        active_bookings=len(active),
        total_revenue=total_revenue,
        average_revenue_per_booking=total_revenue / len(completed) if completed else 0.0,
        bookings_this_month=this_count,
        bookings_last_month=last_count,
        growth_rate=round_half_up(growth, 1),
        popularity_score=round_half_up(popularity),
        status_label=status_label(this_count, total_revenue, growth),
        last_booked_at=recent[0].created_at if recent else None,
        most_popular_day=days.most_common(1)[0][0] if days else None,
        most_popular_hour=f"{hours.most_common(1)[0][0]}:00" if hours else None,
    )


def build_service_analytics(builder: ProjectionBuilder,
                            period_days: int = 30) -> ServiceAnalyticsReport:
    """全部服务的分析数据，按收入降序；总体统计按服务名关联价格。"""
    now = builder.now()
    start = now - timedelta(days=period_days)
    _, last_month = month_bounds(now)
    services = builder.catalog.list_services(active_only=False)
    prices = builder.price_index()

    visits = builder.visits.query_visits(VisitQuery(created_from=min(start, last_month)))
    by_name = {}
    for visit in visits:
        by_name.setdefault(visit.service_name, []).append(visit)

    analytics = [
        analyze_service(service, by_name.get(service.service_name, []), start, now)
        for service in services
    ]
    analytics.sort(key=lambda a: -a.total_revenue)

    completed = [v for v in visits if v.status == STATUS_DONE and v.created_at >= start]
    total_revenue = sum(prices.price_of(v.service_name) for v in completed)
    overall = OverallStats(
        total_revenue=total_revenue,
        total_bookings=len(completed),
        total_services=len(services),
        active_services=sum(1 for s in services if s.is_active),
        average_ticket=total_revenue / len(completed) if completed else 0.0,
    )
    logger.info(f"服务分析完成: {len(analytics)} 项服务, 周期 {period_days} 天")
    return ServiceAnalyticsReport(
        period=period_days,
        start_date=start,
        end_date=now,
        overall_stats=overall,
        services=analytics,
    )


def get_service_analytics(builder: ProjectionBuilder, cache: InsightCache,
                          period_days: int = 30) -> ServiceAnalyticsReport:
    """带缓存的服务分析。"""
    return cache.get_or_compute(
        f"service-analytics:{period_days}",
        lambda: build_service_analytics(builder, period_days),
    )

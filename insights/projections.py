"""历史投影构建。

从服务记录与服务目录派生三类按请求计算、不落库的投影：
- CustomerHistory：顾客到店历史
- ServiceTrend：服务本期/上期趋势
- StaffPerformance：员工业绩

所有计算都以注入的 ``now`` 为基准，同一数据快照下结果确定。
存储异常直接向上抛出，由引擎按分类隔离。
"""
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from config.settings import settings
from .base import round_half_up
from .stores import (
    STATUS_DONE, CatalogEntry, CatalogStore, PriceIndex, VisitQuery,
    VisitRecord, VisitStore
)

SECONDS_PER_DAY = 86400.0


@dataclass
class CustomerHistory:
    """顾客到店历史。"""
    customer_id: int
    customer_name: str
    phone: Optional[str]
    total_visits: int = 0
    completed_visits: int = 0
    last_visit_date: Optional[datetime] = None
    days_since_last_visit: Optional[int] = None
    average_days_between_visits: Optional[float] = None
    total_spent: float = 0.0
    average_ticket_size: float = 0.0
    favorite_services: List[Tuple[str, int]] = field(default_factory=list)
    services_booked: List[str] = field(default_factory=list)

    @property
    def favorite_service_names(self) -> List[str]:
        return [name for name, _ in self.favorite_services]


@dataclass
class ServiceTrend:
    """服务趋势。"""
    service_id: int
    service_name: str
    price: float
    duration: int
    total_bookings: int
    completed_bookings: int
    total_revenue: float
    bookings_this_period: int
    bookings_last_period: int
    growth_rate: float
    average_revenue_per_booking: float


@dataclass
class StaffPerformance:
    """员工业绩。

    utilization_rate 目前是占位值：有完成服务记为 70，否则 0，
    需要排班数据后才能计算真实利用率。
    """
    staff_id: int
    staff_name: str
    total_services: int
    completed_services: int
    total_revenue: float
    average_ticket_size: float
    average_service_duration: int
    rebooking_rate: float
    unique_customers: int
    utilization_rate: float


def growth_rate(this_period: int, last_period: int) -> float:
    """环比增长率（%），保留 1 位小数。

    上期为 0 时：本期也为 0 返回 0，否则返回 100。
    """
    if last_period > 0:
        return round_half_up((this_period - last_period) / last_period * 100, 1)
    return 100.0 if this_period > 0 else 0.0


def days_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


WEEKDAY_NAMES = [
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"
]


def slot_of(moment: datetime) -> Tuple[str, int]:
    """时段键：(星期名, 小时)。"""
    return WEEKDAY_NAMES[moment.weekday()], moment.hour


def bucket_by_slot(visits: List[VisitRecord]) -> Dict[Tuple[str, int], List[VisitRecord]]:
    """按登记时间的 (星期, 小时) 分桶，桶顺序为首次出现顺序。"""
    buckets: Dict[Tuple[str, int], List[VisitRecord]] = {}
    for visit in visits:
        buckets.setdefault(slot_of(visit.created_at), []).append(visit)
    return buckets


def split_by_average_price(services: List[CatalogEntry]) -> Tuple[List[str], List[str]]:
    """按目录均价划分基础服务（<= 均价）与高端服务（> 均价），保持目录顺序。

    Returns:
        (基础服务名称列表, 高端服务名称列表)，目录为空时均为空列表。
    """
    if not services:
        return [], []
    average = sum(s.price for s in services) / len(services)
    basic = [s.service_name for s in services if s.price <= average]
    premium = [s.service_name for s in services if s.price > average]
    return basic, premium


class ProjectionBuilder:
    """历史投影构建器。

    Args:
        visit_store: 服务记录存储。
        catalog_store: 服务目录存储。
        now: 返回当前时间的函数（测试中可固定）。
    """

    def __init__(self, visit_store: VisitStore, catalog_store: CatalogStore,
                 now: Optional[Callable[[], datetime]] = None) -> None:
        self.visits = visit_store
        self.catalog = catalog_store
        self.now = now or datetime.utcnow

    def price_index(self, active_only: bool = False) -> PriceIndex:
        return PriceIndex.from_catalog(
            self.catalog.list_services(active_only=active_only)
        )

    # ================================================================
    # 顾客历史
    # ================================================================

    def customer_visits(self, customer_id: Optional[int] = None,
                        period_days: int = 365) -> List[VisitRecord]:
        """窗口内有顾客的服务记录，最新在前，最多 customer_history_limit 条。"""
        return self.visits.query_visits(VisitQuery(
            created_from=self.now() - timedelta(days=period_days),
            customer_id=customer_id,
            has_customer=True,
            limit=settings.customer_history_limit,
            newest_first=True,
        ))

    def build_customer_history(self, customer_id: Optional[int] = None,
                               period_days: int = 365) -> List[CustomerHistory]:
        """构建顾客历史。

        Args:
            customer_id: 只统计该顾客（可选）。
            period_days: 统计窗口天数。

        Returns:
            CustomerHistory 列表，按顾客最近一次出现的顺序。
        """
        visits = self.customer_visits(customer_id, period_days)
        return self.histories_from_visits(visits)

    def histories_from_visits(self, visits: List[VisitRecord]) -> List[CustomerHistory]:
        prices = self.price_index()
        now = self.now()

        histories: Dict[int, CustomerHistory] = {}
        grouped: Dict[int, List[VisitRecord]] = defaultdict(list)
        for visit in visits:
            if visit.customer_id is None:
                continue
            history = histories.get(visit.customer_id)
            if history is None:
                history = CustomerHistory(
                    customer_id=visit.customer_id,
                    customer_name=visit.customer_name or "",
                    phone=visit.customer_phone,
                )
                histories[visit.customer_id] = history
            grouped[visit.customer_id].append(visit)

            history.total_visits += 1
            if visit.status == STATUS_DONE:
                history.completed_visits += 1
                history.total_spent += prices.price_of(visit.service_name)
            if visit.service_name not in history.services_booked:
                history.services_booked.append(visit.service_name)
            if history.last_visit_date is None or visit.created_at > history.last_visit_date:
                history.last_visit_date = visit.created_at

        for cid, history in histories.items():
            customer_visits = grouped[cid]
            if history.last_visit_date is not None:
                history.days_since_last_visit = int(
                    days_between(now, history.last_visit_date) // 1
                )
            if history.completed_visits > 0:
                history.average_ticket_size = history.total_spent / history.completed_visits

            counts = Counter(v.service_name for v in customer_visits)
            # Counter.most_common 对同频次保持首次出现顺序
            history.favorite_services = counts.most_common(5)

            if len(customer_visits) > 1:
                stamps = sorted(v.created_at for v in customer_visits)
                gaps = [days_between(b, a) for a, b in zip(stamps, stamps[1:])]
                history.average_days_between_visits = sum(gaps) / len(gaps)

        return list(histories.values())

    # ================================================================
    # 服务趋势
    # ================================================================

    def build_service_trends(self, period_days: int = 30) -> List[ServiceTrend]:
        """构建上架服务的趋势（本期 vs 上期，均只统计已完成）。

        Returns:
            ServiceTrend 列表，按总营收降序。
        """
        now = self.now()
        period_start = now - timedelta(days=period_days)
        previous_start = now - timedelta(days=period_days * 2)

        services = self.catalog.list_services(active_only=True)
        visits = self.visits.query_visits(VisitQuery(created_from=previous_start))

        by_service: Dict[str, List[VisitRecord]] = defaultdict(list)
        for visit in visits:
            by_service[visit.service_name].append(visit)

        trends = []
        for service in services:
            service_visits = by_service.get(service.service_name, [])
            completed = [v for v in service_visits if v.status == STATUS_DONE]
            this_period = sum(1 for v in completed if v.created_at >= period_start)
            last_period = sum(1 for v in completed if v.created_at < period_start)
            total_revenue = len(completed) * service.price

            trends.append(ServiceTrend(
                service_id=service.service_id,
                service_name=service.service_name,
                price=service.price,
                duration=service.duration,
                total_bookings=len(service_visits),
                completed_bookings=len(completed),
                total_revenue=total_revenue,
                bookings_this_period=this_period,
                bookings_last_period=last_period,
                growth_rate=growth_rate(this_period, last_period),
                average_revenue_per_booking=(
                    total_revenue / len(completed) if completed else 0.0
                ),
            ))

        return sorted(trends, key=lambda t: -t.total_revenue)

    # ================================================================
    # 员工业绩
    # ================================================================

    def build_staff_performance(self, period_days: int = 30) -> List[StaffPerformance]:
        """构建在职员工的业绩。

        Returns:
            StaffPerformance 列表，按营收降序。
        """
        staff = self.catalog.list_staff(active_only=True)
        visits = self.visits.query_visits(VisitQuery(
            created_from=self.now() - timedelta(days=period_days),
            has_staff=True,
            limit=settings.staff_visit_limit,
        ))
        prices = self.price_index()

        by_staff: Dict[int, List[VisitRecord]] = defaultdict(list)
        for visit in visits:
            by_staff[visit.staff_id].append(visit)

        performance = []
        for member in staff:
            staff_visits = by_staff.get(member.staff_id, [])
            completed = [v for v in staff_visits if v.status == STATUS_DONE]

            total_revenue = 0.0
            total_minutes = 0.0
            for visit in completed:
                entry = prices.lookup(visit.service_name)
                if entry is None:
                    continue
                total_revenue += entry.price
                if visit.started_at and visit.completed_at:
                    total_minutes += (
                        visit.completed_at - visit.started_at
                    ).total_seconds() / 60

            customer_counts = Counter(
                v.customer_id for v in staff_visits if v.customer_id is not None
            )
            unique_customers = len(customer_counts)
            repeat_customers = sum(1 for c in customer_counts.values() if c > 1)
            rebooking = (
                repeat_customers / unique_customers * 100 if unique_customers else 0.0
            )
            avg_minutes = total_minutes / len(completed) if completed else 0.0

            performance.append(StaffPerformance(
                staff_id=member.staff_id,
                staff_name=member.name,
                total_services=len(staff_visits),
                completed_services=len(completed),
                total_revenue=total_revenue,
                average_ticket_size=total_revenue / len(completed) if completed else 0.0,
                average_service_duration=round_half_up(avg_minutes),
                rebooking_rate=round_half_up(rebooking, 1),
                unique_customers=unique_customers,
                utilization_rate=70.0 if completed else 0.0,
            ))

        return sorted(performance, key=lambda p: -p.total_revenue)

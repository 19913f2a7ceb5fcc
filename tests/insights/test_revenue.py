"""Revenue optimization insight tests."""
from datetime import datetime

import pytest

from insights.base import InsightPriority
from insights.projections import ServiceTrend, StaffPerformance
from insights.revenue import (
    analyze_cash_flow_trends, analyze_service_revenue, analyze_staff_revenue,
    build_cash_flow, find_underperformers, generate_pricing_suggestions,
    revenue_per_hour, suggest_prices, week_over_week_change, week_start
)
from insights.stores import StaffEntry
from tests.insights.conftest import catalog


def trend(price=25.0, growth=0.0, this_period=0, completed=0, duration=30, revenue=None):
    return ServiceTrend(
        service_id=1,
        service_name="Haircut",
        price=price,
        duration=duration,
        total_bookings=completed,
        completed_bookings=completed,
        total_revenue=price * completed if revenue is None else revenue,
        bookings_this_period=this_period,
        bookings_last_period=0,
        growth_rate=growth,
        average_revenue_per_booking=price if completed else 0.0,
    )


def performer(name, revenue, completed, staff_id=1):
    return StaffPerformance(
        staff_id=staff_id, staff_name=name, total_services=completed,
        completed_services=completed, total_revenue=revenue,
        average_ticket_size=revenue / completed if completed else 0.0,
        average_service_duration=30, rebooking_rate=0.0, unique_customers=0,
        utilization_rate=0.0,
    )


class TestRevenuePerHour:
    def test_rate(self):
        assert revenue_per_hour(trend(price=30, completed=4, duration=30)) == 60.0

    def test_zero_hours(self):
        assert revenue_per_hour(trend(completed=0)) == 0.0


class TestServiceRevenue:
    """Tests for analyze_service_revenue()."""

    def test_top_and_per_hour(self, make_builder, visit_factory):
        visits = [visit_factory("Haircut", days_ago=d) for d in (1, 2, 3)]
        visits.append(visit_factory("Hair Color", days_ago=1))
        insights, trends = analyze_service_revenue(
            make_builder(visits, catalog(Haircut=25, Hair_Color=80))
        )
        by_id = {i.id: i for i in insights}
        assert by_id["top-revenue-service"].metadata == {"service_name": "Hair Color"}
        assert by_id["top-revenue-service"].value == "$80"
        # Haircut: 75 over 1.5h = 50/hr; Hair Color: 80 over 0.5h = 160/hr
        assert by_id["revenue-per-hour"].value == "$160/hr"
        assert "declining-services" not in by_id

    def test_declining(self, make_builder, visit_factory):
        visits = [visit_factory("Haircut", days_ago=d) for d in (1, 2, 3)]
        visits += [visit_factory("Haircut", days_ago=d) for d in range(31, 41)]
        insights, _ = analyze_service_revenue(make_builder(visits, catalog(Haircut=25)))
        declining = next(i for i in insights if i.id == "declining-services")
        assert declining.priority == InsightPriority.HIGH
        assert declining.value == "Haircut: -70%"


class TestCashFlow:
    """Tests for the cash-flow buckets and week-over-week insight."""

    def test_week_starts_on_sunday(self):
        assert week_start(datetime(2024, 6, 15, 18, 30)) == datetime(2024, 6, 9)
        assert week_start(datetime(2024, 6, 9, 8, 0)) == datetime(2024, 6, 9)

    def test_week_over_week_change(self):
        assert week_over_week_change(150, 100) == 50.0
        assert week_over_week_change(50, 0) == 0.0

    def test_buckets_by_completion_time(self, make_builder, visit_factory):
        visits = [
            visit_factory("Haircut", days_ago=1),
            visit_factory("Hair Color", days_ago=1),
            visit_factory("Haircut", days_ago=45),
            visit_factory("Haircut", days_ago=2, completed=False),
            visit_factory("Haircut", days_ago=2, status="waiting"),
        ]
        flow = build_cash_flow(make_builder(visits, catalog(Haircut=25, Hair_Color=80)))

        assert flow.daily == [{"date": "2024-06-14", "revenue": 105.0}]
        assert flow.monthly == [
            {"month": "2024-05", "revenue": 25.0},
            {"month": "2024-06", "revenue": 105.0},
        ]
        assert flow.day_of_week["Friday"] == 105.0
        assert flow.hour_of_day == {"12:00": 130.0}

    def test_weekly_is_last_twelve(self, make_builder, visit_factory):
        visits = [visit_factory(days_ago=7 * w) for w in range(20)]
        flow = build_cash_flow(make_builder(visits, catalog(Haircut=25)))
        assert len(flow.weekly) == 12
        assert flow.weekly[-1]["week"] == "2024-06-09"

    def test_revenue_up(self, make_builder, visit_factory):
        # this week (from Sunday 2024-06-09): 3 cuts; last week: 1 cut
        visits = [visit_factory(days_ago=d) for d in (0, 1, 2)]
        visits.append(visit_factory(days_ago=8))
        insights, _ = analyze_cash_flow_trends(make_builder(visits, catalog(Haircut=25)))
        up = next(i for i in insights if i.id == "revenue-up-week")
        assert up.value == "+200%"
        assert up.priority == InsightPriority.INFO

    def test_revenue_down(self, make_builder, visit_factory):
        visits = [visit_factory(days_ago=0)]
        visits += [visit_factory(days_ago=d) for d in (7, 8, 9, 10)]
        insights, _ = analyze_cash_flow_trends(make_builder(visits, catalog(Haircut=25)))
        down = next(i for i in insights if i.id == "revenue-down-week")
        assert down.value == "-75%"
        assert down.priority == InsightPriority.HIGH

    def test_best_day(self, make_builder, visit_factory):
        visits = [visit_factory(days_ago=1), visit_factory(days_ago=8), visit_factory(days_ago=2)]
        insights, _ = analyze_cash_flow_trends(make_builder(visits, catalog(Haircut=25)))
        best = next(i for i in insights if i.id == "best-day")
        assert best.metadata == {"day": "Friday"}
        assert best.value == "$50"


class TestStaffRevenue:
    """Tests for staff revenue insights."""

    def test_underperformers(self):
        team = [
            performer("Alex", 1000, 20, 1),
            performer("Jordan", 900, 18, 2),
            performer("Sam", 200, 6, 3),
            performer("Riley", 100, 2, 4),
        ]
        # average 550, threshold 385; Riley has too few services
        assert [p.staff_name for p in find_underperformers(team)] == ["Sam"]

    def test_empty_team(self):
        assert find_underperformers([]) == []

    def test_insights(self, make_builder, visit_factory):
        staff = [StaffEntry(1, "Alex"), StaffEntry(2, "Jordan")]
        visits = [visit_factory("Haircut", days_ago=1, staff_id=1) for _ in range(4)]
        visits.append(visit_factory("Hair Color", days_ago=1, staff_id=2))
        insights, performance = analyze_staff_revenue(
            make_builder(visits, catalog(Haircut=25, Hair_Color=80), staff)
        )
        by_id = {i.id: i for i in insights}
        assert by_id["top-staff-revenue"].value == "$100"
        assert by_id["most-efficient-staff"].metadata == {"staff_id": 2}
        assert by_id["most-efficient-staff"].value == "$80/service"

    def test_no_staff(self, make_builder):
        insights, performance = analyze_staff_revenue(make_builder([], catalog(Haircut=25)))
        assert insights == [] and performance == []


class TestPricing:
    """Tests for suggest_prices() rules."""

    def test_raise_for_high_demand(self):
        [suggestion] = suggest_prices(
            trend(price=40, growth=50, this_period=12, completed=12, revenue=480, duration=30),
            benchmark=50,
        )
        assert suggestion.suggested_price == 46
        assert suggestion.confidence == 70

    def test_raise_rounds_half_up(self):
        [suggestion] = suggest_prices(
            trend(price=49, growth=50, this_period=12, completed=12, duration=30),
            benchmark=50,
        )
        assert suggestion.suggested_price == 56

    def test_promo_for_declining(self):
        suggestions = suggest_prices(
            trend(price=80, growth=-40, this_period=5, completed=5, duration=30), benchmark=50
        )
        assert [(s.suggested_price, s.confidence) for s in suggestions] == [(75, 60)]

    def test_low_revenue_per_hour(self):
        suggestions = suggest_prices(
            trend(price=20, completed=5, duration=60), benchmark=50
        )
        assert [(s.suggested_price, s.confidence) for s in suggestions] == [(22, 50)]

    def test_rules_are_not_exclusive(self):
        suggestions = suggest_prices(
            trend(price=20, growth=-50, this_period=6, completed=6, duration=60), benchmark=50
        )
        assert [s.confidence for s in suggestions] == [60, 50]

    def test_benchmark_from_business_config(self):
        # 20/hr is below 0.8 * 50
        suggestions = suggest_prices(trend(price=20, completed=5, duration=60))
        assert len(suggestions) == 1

    def test_generate_counts_high_confidence(self, make_builder, visit_factory):
        visits = [visit_factory("Haircut", days_ago=d % 50) for d in range(12)]
        insights, suggestions = generate_pricing_suggestions(
            make_builder(visits, catalog(Haircut=25))
        )
        # 12 completed in the last 60 days, none before: growth 100
        assert suggestions[0].confidence == 70
        assert insights[0].id == "pricing-suggestions"
        assert insights[0].metadata == {"count": 1}

    @pytest.mark.parametrize("growth", [30, -30])
    def test_thresholds_are_strict(self, growth):
        assert suggest_prices(
            trend(price=40, growth=growth, this_period=20, completed=20, duration=30),
            benchmark=50,
        ) == []

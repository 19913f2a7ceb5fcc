"""InsightEngine tests: aggregation, filtering, failure isolation and deadline."""
import asyncio
import threading

import fakeredis
import pytest

from insights import (
    DataUnavailableError, InsightCache, InsightCategory, InsightEngine,
    InsightPriority, InvalidCategoryError
)
from insights.base import Insight
from insights.engine import filter_by_priority
from insights.stores import StaffEntry
from tests.insights.conftest import (
    NOW, FailingVisitStore, MemoryCatalogStore, MemoryVisitStore, catalog
)


@pytest.fixture
def shop(visit_factory):
    """Visit history that produces insights in several categories."""
    visits = [
        visit_factory("Haircut", days_ago=d, customer_id=1, staff_id=1)
        for d in (0, 7, 14, 21)
    ]
    visits += [
        visit_factory("Haircut", days_ago=100, customer_id=2, staff_id=1),
        visit_factory("Hair Color", days_ago=150, customer_id=3, staff_id=2),
        visit_factory("Haircut", days_ago=40, customer_id=4, staff_id=2),
        visit_factory("Haircut", days_ago=3, customer_id=5, staff_id=2, status="cancelled"),
    ]
    visit_store = MemoryVisitStore(visits)
    catalog_store = MemoryCatalogStore(
        catalog(Haircut=25, Hair_Color=80),
        [StaffEntry(1, "Alex"), StaffEntry(2, "Jordan")],
    )
    return visit_store, catalog_store


@pytest.fixture
def engine(shop):
    visit_store, catalog_store = shop
    return InsightEngine(visit_store, catalog_store, now=lambda: NOW, deadline=5)


def as_dicts(all_insights):
    return {
        category: [i.to_dict() for i in insights]
        for category, insights in all_insights.items()
    }


class TestGetAllInsights:
    """Tests for InsightEngine.get_all_insights()."""

    @pytest.mark.asyncio
    async def test_every_category_has_a_key(self, engine):
        all_insights = await engine.get_all_insights()
        assert set(all_insights) == set(InsightCategory)
        assert all_insights[InsightCategory.REPEAT_VISITS]
        assert all_insights[InsightCategory.CUSTOMER_BEHAVIOR]

    @pytest.mark.asyncio
    async def test_categories_are_sorted(self, engine):
        all_insights = await engine.get_all_insights()
        for category, insights in all_insights.items():
            assert all(i.category == category for i in insights)
            priorities = [int(i.priority) for i in insights]
            assert priorities == sorted(priorities)

    @pytest.mark.asyncio
    async def test_deterministic(self, engine):
        first = await engine.get_all_insights()
        second = await engine.get_all_insights()
        assert as_dicts(first) == as_dicts(second)

    @pytest.mark.asyncio
    async def test_priority_filter(self, engine):
        all_insights = await engine.get_all_insights(priority="high")
        flat = [i for insights in all_insights.values() for i in insights]
        assert flat
        assert all(i.priority == InsightPriority.HIGH for i in flat)

    @pytest.mark.asyncio
    async def test_empty_shop(self):
        engine = InsightEngine(MemoryVisitStore(), MemoryCatalogStore(), now=lambda: NOW)
        all_insights = await engine.get_all_insights()
        assert set(all_insights) == set(InsightCategory)
        assert all(v == [] for v in all_insights.values())


class TestFailureIsolation:
    """A failing category never takes the others down."""

    @pytest.mark.asyncio
    async def test_raising_category_is_empty(self, shop, engine):
        def boom(builder):
            raise RuntimeError("staff table is corrupt")

        visit_store, catalog_store = shop
        broken = InsightEngine(
            visit_store, catalog_store, now=lambda: NOW,
            generators={InsightCategory.STAFF_PERFORMANCE: boom},
        )
        expected = as_dicts(await engine.get_all_insights())
        actual = as_dicts(await broken.get_all_insights())

        assert actual[InsightCategory.STAFF_PERFORMANCE] == []
        for category in InsightCategory:
            if category != InsightCategory.STAFF_PERFORMANCE:
                assert actual[category] == expected[category]

    @pytest.mark.asyncio
    async def test_error_is_recorded(self, shop):
        def boom(builder):
            raise RuntimeError("nope")

        visit_store, catalog_store = shop
        broken = InsightEngine(
            visit_store, catalog_store, now=lambda: NOW,
            generators={InsightCategory.REVENUE_OPTIMIZATION: boom},
        )
        results = await broken.run_categories()
        failed = [r for r in results if not r.ok]
        assert [r.category for r in failed] == [InsightCategory.REVENUE_OPTIMIZATION]
        assert isinstance(failed[0].error, RuntimeError)

    @pytest.mark.asyncio
    async def test_unavailable_store(self):
        engine = InsightEngine(
            FailingVisitStore(DataUnavailableError()),
            MemoryCatalogStore(catalog(Haircut=25)),
            now=lambda: NOW,
        )
        all_insights = await engine.get_all_insights()
        assert set(all_insights) == set(InsightCategory)
        assert all(v == [] for v in all_insights.values())
        assert await engine.get_top_insights() == []


class TestDeadline:
    @pytest.mark.asyncio
    async def test_slow_category_is_dropped(self, shop):
        release = threading.Event()

        def slow(builder):
            release.wait(5)
            return []

        visit_store, catalog_store = shop
        engine = InsightEngine(
            visit_store, catalog_store, now=lambda: NOW, deadline=0.5,
            generators={InsightCategory.SLOT_OPTIMIZATION: slow},
        )
        try:
            results = await engine.run_categories()
        finally:
            release.set()

        by_category = {r.category: r for r in results}
        slot = by_category[InsightCategory.SLOT_OPTIMIZATION]
        assert slot.insights == []
        assert isinstance(slot.error, asyncio.TimeoutError)
        assert by_category[InsightCategory.REPEAT_VISITS].ok
        assert [r.category for r in results] == list(InsightCategory)


class TestTopInsights:
    """Tests for InsightEngine.get_top_insights()."""

    @pytest.mark.asyncio
    async def test_limit_and_order(self, engine):
        all_insights = await engine.get_all_insights()
        total = sum(len(v) for v in all_insights.values())
        top = await engine.get_top_insights(limit=3)

        assert len(top) == min(3, total)
        priorities = [int(i.priority) for i in top]
        assert priorities == sorted(priorities)
        best = min(int(i.priority) for v in all_insights.values() for i in v)
        assert priorities[0] == best

    @pytest.mark.asyncio
    async def test_priority_filter_before_limit(self):
        def mixed(builder):
            return [
                Insight(id=f"{priority.name.lower()}-{n}",
                        category=InsightCategory.REVENUE_OPTIMIZATION,
                        title="t", description="d", emoji="*",
                        priority=priority, value=n)
                for priority in (InsightPriority.CRITICAL, InsightPriority.HIGH)
                for n in range(3)
            ]

        engine = InsightEngine(
            MemoryVisitStore(), MemoryCatalogStore(), now=lambda: NOW,
            generators={InsightCategory.REVENUE_OPTIMIZATION: mixed},
        )
        top = await engine.get_top_insights(limit=3, priority="high")
        assert [i.id for i in top] == ["high-0", "high-1", "high-2"]

        top = await engine.get_top_insights(limit=2, priority=InsightPriority.HIGH)
        assert [i.id for i in top] == ["high-0", "high-1"]

    @pytest.mark.asyncio
    async def test_non_positive_limit_keeps_all(self, engine):
        all_insights = await engine.get_all_insights()
        total = sum(len(v) for v in all_insights.values())
        assert len(await engine.get_top_insights(limit=-1)) == total
        assert len(await engine.get_top_insights(limit=0)) == total


class TestByCategory:
    """Tests for InsightEngine.get_insights_by_category()."""

    @pytest.mark.asyncio
    async def test_by_name(self, engine):
        insights = await engine.get_insights_by_category("repeat-visits")
        assert insights
        assert all(i.category == InsightCategory.REPEAT_VISITS for i in insights)

    @pytest.mark.asyncio
    async def test_limit(self, engine):
        every = await engine.get_insights_by_category(InsightCategory.REPEAT_VISITS)
        one = await engine.get_insights_by_category(InsightCategory.REPEAT_VISITS, limit=1)
        unlimited = await engine.get_insights_by_category(
            InsightCategory.REPEAT_VISITS, limit=0
        )
        assert [i.id for i in one] == [every[0].id]
        assert len(unlimited) == len(every)

    @pytest.mark.asyncio
    async def test_priority(self, engine):
        insights = await engine.get_insights_by_category("repeat-visits", priority=2)
        assert insights
        assert all(i.priority == InsightPriority.HIGH for i in insights)

    @pytest.mark.asyncio
    async def test_invalid_category(self, engine):
        with pytest.raises(InvalidCategoryError) as exc_info:
            await engine.get_insights_by_category("vibes")
        assert exc_info.value.category == "vibes"
        assert exc_info.value.valid_categories == InsightCategory.values()
        assert exc_info.value.as_dict()["code"] == "INVALID_CATEGORY"

    @pytest.mark.asyncio
    async def test_invalid_priority(self, engine):
        with pytest.raises(ValueError):
            await engine.get_insights_by_category("repeat-visits", priority="urgent")


class TestFilterByPriority:
    def test_none_keeps_all(self):
        assert filter_by_priority([1, 2], None) == [1, 2]


class TestCustomerAndAnalytics:
    def test_customer_insights(self, engine):
        result = engine.get_customer_insights(1)
        assert result.visit_history.total_visits == 4
        assert result.next_service_due.predicted_date is not None

    def test_service_analytics_are_cached(self, shop):
        visit_store, catalog_store = shop
        cache = InsightCache(client=fakeredis.FakeRedis(), default_ttl=60)
        engine = InsightEngine(visit_store, catalog_store, now=lambda: NOW, cache=cache)

        first = engine.get_service_analytics(30)
        queries = len(visit_store.queries)
        assert engine.get_service_analytics(30) == first
        assert len(visit_store.queries) == queries

        engine.get_service_analytics(7)
        assert len(visit_store.queries) == queries + 1

        cache.invalidate()
        assert engine.get_service_analytics(30) == first
        assert len(visit_store.queries) == queries + 2

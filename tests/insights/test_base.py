"""Insight base type tests.

Covers the priority classifier and its tagged variants, rounding and
money formatting helpers, the Insight wire shape, and the error types.
"""
from datetime import datetime

import pytest

from insights.base import (
    CategoryResult, FixedPriority, Insight, InsightCategory, InsightPriority,
    WeightedPriority, classify_priority, format_money, format_number,
    round_half_up, sort_by_priority, to_wire
)
from insights.errors import DataUnavailableError, InsightError, InvalidCategoryError


def make_insight(insight_id="x", priority=InsightPriority.MEDIUM, **kwargs):
    fields = dict(
        id=insight_id,
        category=InsightCategory.CUSTOMER_BEHAVIOR,
        title="Title",
        description="Description",
        emoji="📈",
        priority=priority,
        value="1 customers",
    )
    fields.update(kwargs)
    return Insight(**fields)


# ============================================================
# Priority
# ============================================================
class TestClassifyPriority:
    """Tests for the weighted priority score."""

    @pytest.mark.parametrize("urgency,impact,frequency,expected", [
        (100, 100, 100, InsightPriority.CRITICAL),
        (100, 100, 0, InsightPriority.CRITICAL),   # 80 exactly
        (100, 34, 0, InsightPriority.HIGH),        # 60.2
        (80, 0, 0, InsightPriority.MEDIUM),        # 40 exactly
        (40, 0, 0, InsightPriority.LOW),           # 20 exactly
        (0, 0, 99, InsightPriority.INFO),          # 19.8
        (0, 0, 0, InsightPriority.INFO),
    ])
    def test_thresholds(self, urgency, impact, frequency, expected):
        assert classify_priority(urgency, impact, frequency) == expected

    def test_weighted_variant_resolves_through_classifier(self):
        assert WeightedPriority(urgency=100, impact=100).resolve() == InsightPriority.CRITICAL

    def test_fixed_variant(self):
        assert FixedPriority(InsightPriority.LOW).resolve() == InsightPriority.LOW


class TestPriorityParse:
    """Tests for InsightPriority.parse()."""

    @pytest.mark.parametrize("value,expected", [
        ("high", InsightPriority.HIGH),
        ("CRITICAL", InsightPriority.CRITICAL),
        (" info ", InsightPriority.INFO),
        (3, InsightPriority.MEDIUM),
        ("4", InsightPriority.LOW),
        (InsightPriority.HIGH, InsightPriority.HIGH),
    ])
    def test_accepted_forms(self, value, expected):
        assert InsightPriority.parse(value) == expected

    @pytest.mark.parametrize("value", ["urgent", 0, "9"])
    def test_rejects_unknown(self, value):
        with pytest.raises(ValueError):
            InsightPriority.parse(value)


# ============================================================
# Helpers
# ============================================================
class TestRounding:
    """round_half_up matches half-up rounding, not banker's rounding."""

    @pytest.mark.parametrize("value,expected", [
        (2.5, 3), (3.5, 4), (-2.5, -2), (254.99999, 255), (0.49, 0),
    ])
    def test_integers(self, value, expected):
        assert round_half_up(value) == expected
        assert isinstance(round_half_up(value), int)

    def test_one_decimal(self):
        assert round_half_up(12.25, 1) == 12.3
        assert round_half_up(-33.333, 1) == -33.3


class TestFormatting:
    """Tests for number and money formatting."""

    def test_format_number(self):
        assert format_number(255.0) == "255"
        assert format_number(12.5) == "12.5"
        assert format_number(1.239) == "1.24"

    def test_format_money_uses_currency_symbol(self, monkeypatch):
        from config.settings import settings
        monkeypatch.setattr(settings, "currency_symbol", "€")
        assert format_money(45) == "€45"


# ============================================================
# Insight
# ============================================================
class TestInsight:
    """Tests for Insight construction and its wire shape."""

    def test_priority_source_is_resolved(self):
        insight = make_insight(priority=FixedPriority(InsightPriority.HIGH))
        assert insight.priority is InsightPriority.HIGH

        weighted = make_insight(priority=WeightedPriority(urgency=0, impact=0, frequency=0))
        assert weighted.priority is InsightPriority.INFO

    def test_category_string_is_coerced(self):
        insight = make_insight(category="repeat-visits")
        assert insight.category is InsightCategory.REPEAT_VISITS

    def test_to_dict_minimal_omits_optional_keys(self):
        data = make_insight().to_dict()
        assert data == {
            "id": "x",
            "category": "customer-behavior",
            "title": "Title",
            "description": "Description",
            "emoji": "📈",
            "priority": 3,
            "value": "1 customers",
        }

    def test_to_dict_camel_cases_optional_fields(self):
        data = make_insight(
            actionable=True,
            action_label="View",
            action_url="/customers",
            metadata={"risk_level": "high", "last_visit": datetime(2024, 1, 2, 3, 4)},
        ).to_dict()
        assert data["actionLabel"] == "View"
        assert data["actionUrl"] == "/customers"
        assert data["metadata"] == {"riskLevel": "high", "lastVisit": "2024-01-02T03:04:00"}

    def test_to_wire_converts_nested_dataclasses(self):
        result = CategoryResult(category=InsightCategory.RECOMMENDATIONS)
        assert to_wire(result) == {
            "category": "recommendations",
            "insights": [],
            "error": None,
        }


class TestSortByPriority:
    """sort_by_priority is ascending and stable."""

    def test_stable_order(self):
        a = make_insight("a", InsightPriority.MEDIUM)
        b = make_insight("b", InsightPriority.HIGH)
        c = make_insight("c", InsightPriority.MEDIUM)
        d = make_insight("d", InsightPriority.CRITICAL)
        assert [i.id for i in sort_by_priority([a, b, c, d])] == ["d", "b", "a", "c"]


class TestCategoryResult:
    def test_ok(self):
        assert CategoryResult(category=InsightCategory.REPEAT_VISITS).ok
        assert not CategoryResult(
            category=InsightCategory.REPEAT_VISITS, error=RuntimeError("x")
        ).ok


# ============================================================
# Errors
# ============================================================
class TestErrors:
    """Tests for the structured insight errors."""

    def test_default_message(self):
        error = DataUnavailableError()
        assert isinstance(error, InsightError)
        assert error.as_dict() == {
            "code": "DATA_UNAVAILABLE",
            "message": "Visit or catalog data is unavailable",
        }

    def test_invalid_category_lists_valid_categories(self):
        error = InvalidCategoryError("bogus", InsightCategory.values())
        assert "Invalid category: bogus" in str(error)
        data = error.as_dict()
        assert data["code"] == "INVALID_CATEGORY"
        assert data["validCategories"] == InsightCategory.values()
        assert len(data["validCategories"]) == 7

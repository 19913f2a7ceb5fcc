"""Fixtures for insight module tests.

Scoring modules are tested against in-memory stores so each test can
describe its visit history directly. Time is pinned to NOW.
"""
import itertools
from datetime import datetime, timedelta
from typing import List

import pytest

from insights.projections import ProjectionBuilder
from insights.stores import (
    STATUS_DONE, CatalogEntry, StaffEntry, VisitQuery, VisitRecord
)

# Saturday, mid-month, noon
NOW = datetime(2024, 6, 15, 12, 0, 0)


class MemoryVisitStore:
    """VisitStore over a list of VisitRecord, applying VisitQuery filters."""

    def __init__(self, visits=None):
        self.visits: List[VisitRecord] = list(visits or [])
        self.queries: List[VisitQuery] = []

    def query_visits(self, query: VisitQuery) -> List[VisitRecord]:
        self.queries.append(query)
        rows = []
        for v in self.visits:
            if query.created_from is not None and v.created_at < query.created_from:
                continue
            if query.created_to is not None and v.created_at >= query.created_to:
                continue
            if query.statuses and v.status not in query.statuses:
                continue
            if query.customer_id is not None and v.customer_id != query.customer_id:
                continue
            if query.staff_id is not None and v.staff_id != query.staff_id:
                continue
            if query.service_name is not None and v.service_name != query.service_name:
                continue
            if query.has_customer and v.customer_id is None:
                continue
            if query.has_staff and v.staff_id is None:
                continue
            if query.completed_only and (v.status != STATUS_DONE or v.completed_at is None):
                continue
            rows.append(v)
        rows.sort(key=lambda v: (v.created_at, v.id), reverse=query.newest_first)
        if query.limit:
            rows = rows[:query.limit]
        return rows


class MemoryCatalogStore:
    """CatalogStore over fixed service and staff lists."""

    def __init__(self, services=None, staff=None):
        self.services: List[CatalogEntry] = list(services or [])
        self.staff: List[StaffEntry] = list(staff or [])

    def list_services(self, active_only=False):
        return [s for s in self.services if s.is_active or not active_only]

    def list_staff(self, active_only=False):
        return [s for s in self.staff if s.is_active or not active_only]


class FailingVisitStore:
    """A VisitStore whose every query fails."""

    def __init__(self, error):
        self.error = error

    def query_visits(self, query):
        raise self.error


def catalog(**prices):
    """Build catalog entries from name=price keyword pairs, in order."""
    return [
        CatalogEntry(service_id=i, service_name=name.replace("_", " "),
                     price=float(price), duration=30)
        for i, (name, price) in enumerate(prices.items(), start=1)
    ]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def visit_factory():
    """Create VisitRecords with sequential ids.

    ``days_ago`` positions created_at relative to NOW; done visits get a
    completed_at thirty minutes after creation unless told otherwise.
    """
    ids = itertools.count(1)

    def make(service_name="Haircut", days_ago=0.0, status=STATUS_DONE,
             customer_id=None, staff_id=None, customer_name=None,
             staff_name=None, created_at=None, completed=True,
             started_minutes=None):
        created = created_at or NOW - timedelta(days=days_ago)
        completed_at = None
        started_at = None
        if status == STATUS_DONE and completed:
            completed_at = created + timedelta(minutes=30)
            if started_minutes is not None:
                started_at = completed_at - timedelta(minutes=started_minutes)
        return VisitRecord(
            id=next(ids),
            service_name=service_name,
            status=status,
            created_at=created,
            customer_id=customer_id,
            staff_id=staff_id,
            started_at=started_at,
            completed_at=completed_at,
            customer_name=customer_name or (
                f"Customer {customer_id}" if customer_id is not None else None
            ),
            customer_phone=f"555-{customer_id:04d}" if customer_id is not None else None,
            staff_name=staff_name,
        )

    return make


@pytest.fixture
def make_builder():
    """Build a ProjectionBuilder over in-memory stores pinned to NOW."""
    def build(visits=(), services=(), staff=()):
        return ProjectionBuilder(
            MemoryVisitStore(visits),
            MemoryCatalogStore(services, staff),
            now=lambda: NOW,
        )

    return build

"""SQL store adapter tests.

SqlVisitStore and SqlCatalogStore satisfy the read-only protocols the
insight engine consumes, and wrap SQLAlchemy failures as DataUnavailableError.
"""
import pytest
from sqlalchemy.exc import OperationalError

from insights.errors import DataUnavailableError
from insights.stores import CatalogStore, VisitQuery, VisitStore


class TestProtocols:
    """The manager exposes protocol-conforming stores."""

    def test_visit_store_protocol(self, temp_db):
        assert isinstance(temp_db.visit_store, VisitStore)

    def test_catalog_store_protocol(self, temp_db):
        assert isinstance(temp_db.catalog_store, CatalogStore)


class TestSqlCatalogStore:
    """Tests for SqlCatalogStore."""

    def test_list_services_in_catalog_order(self, seeded_db):
        entries = seeded_db.catalog_store.list_services()
        assert [e.service_name for e in entries] == ["Haircut", "Beard Trim", "Hair Color"]
        assert entries[0].price == 25.0
        assert isinstance(entries[0].price, float)

    def test_active_only(self, seeded_db):
        color = seeded_db.services.get_or_create("Hair Color")
        seeded_db.services.deactivate(color.id)
        names = [e.service_name for e in seeded_db.catalog_store.list_services(active_only=True)]
        assert names == ["Haircut", "Beard Trim"]
        assert len(seeded_db.catalog_store.list_services()) == 3

    def test_list_staff(self, seeded_db):
        alex = seeded_db.staff.get_or_create("Alex")
        seeded_db.staff.deactivate(alex.id)
        active = seeded_db.catalog_store.list_staff(active_only=True)
        assert [s.name for s in active] == ["Jordan"]


class TestSqlVisitStore:
    """Tests for SqlVisitStore."""

    def test_query_visits(self, seeded_db, sample_datetime):
        seeded_db.add_visit({"service_name": "Haircut", "created_at": sample_datetime})
        records = seeded_db.visit_store.query_visits(VisitQuery())
        assert len(records) == 1
        assert records[0].service_name == "Haircut"

    def test_database_error_is_wrapped(self, temp_db, monkeypatch):
        def boom(query, session=None):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(temp_db.visits, "find", boom)
        with pytest.raises(DataUnavailableError) as exc_info:
            temp_db.visit_store.query_visits(VisitQuery())
        assert exc_info.value.code == "DATA_UNAVAILABLE"

    def test_catalog_error_is_wrapped(self, temp_db, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("no such table"))

        monkeypatch.setattr(temp_db.services, "get_all", boom)
        with pytest.raises(DataUnavailableError):
            temp_db.catalog_store.list_services()

"""Fixtures for isolated database module tests.

Provides reusable fixtures for all database test modules, including
a fresh temp-file SQLite DatabaseManager for each test.
"""
import os
import shutil
import tempfile
from datetime import datetime

import pytest

from database import DatabaseManager
from database.base_crud import BaseCRUD


@pytest.fixture
def temp_db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="db-tests-")
    db_path = os.path.join(temp_dir, "test.db")
    manager = DatabaseManager(database_url=f"sqlite:///{db_path}")
    manager.create_tables()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def db_conn(temp_db):
    """Yield a DatabaseConnection from the temp_db manager."""
    return temp_db.conn


@pytest.fixture
def base_crud(db_conn):
    """Yield a BaseCRUD instance."""
    return BaseCRUD(db_conn)


@pytest.fixture
def sample_datetime():
    """Stable datetime value for deterministic tests."""
    return datetime(2024, 1, 28, 10, 0, 0)


@pytest.fixture
def seeded_db(temp_db):
    """A temp database with a small salon catalog and two staff members."""
    temp_db.seed_catalog([
        {"name": "Haircut", "price": 25.0, "duration": 30},
        {"name": "Beard Trim", "price": 15.0, "duration": 15},
        {"name": "Hair Color", "price": 80.0, "duration": 90},
    ])
    temp_db.seed_staff(["Alex", "Jordan"])
    return temp_db
